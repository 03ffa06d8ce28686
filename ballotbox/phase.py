'''Workflow status (phase) of an election.

The election passes through a fixed sequence of statuses, from voter
registration to the tallied result. The sequence is strictly linear: every
transition goes to the immediate successor of the current status, there is
no way back and no step can be skipped.
'''

import enum


class WorkflowStatus(enum.Enum):
    '''A stage of the election; determines which calls are accepted.'''
    REGISTERING_VOTERS = 'RegisteringVoters'
    PROPOSALS_REGISTRATION_STARTED = 'ProposalsRegistrationStarted'
    PROPOSALS_REGISTRATION_ENDED = 'ProposalsRegistrationEnded'
    VOTING_SESSION_STARTED = 'VotingSessionStarted'
    VOTING_SESSION_ENDED = 'VotingSessionEnded'
    VOTES_TALLIED = 'VotesTallied'

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        '''True for the final status, after which nothing can change.'''
        return self is WorkflowStatus.VOTES_TALLIED

    def next(self) -> 'WorkflowStatus':
        '''Return the status that immediately follows this one.

        :raises ValueError: If this is the terminal status.
        '''
        if self.is_terminal:
            raise ValueError(f'{self} is the terminal workflow status')
        return ORDER[ORDER.index(self) + 1]

    def precedes(self, other: 'WorkflowStatus') -> bool:
        '''Return True if this status comes strictly before the other one.'''
        return ORDER.index(self) < ORDER.index(other)


ORDER = tuple(WorkflowStatus)
INITIAL_STATUS = WorkflowStatus.REGISTERING_VOTERS
