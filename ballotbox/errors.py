'''Errors raised by the election workflow.

Every rule of the workflow that can reject a call has its own subclass of
:class:`WorkflowError`, so callers can catch either the whole family or a
single failure kind. A rejected call never changes the state of the workflow.
'''

from typing import Any, Optional


class WorkflowError(Exception):
    '''A call was rejected by the election workflow rules.'''
    pass


class Unauthorized(WorkflowError):
    '''A call reserved for the administrator was made by someone else.

    :param caller: Identity of the rejected caller.
    '''
    def __init__(self, caller: Any):
        self.caller = caller
        super().__init__(f'caller {caller!r} is not the administrator')


class NotRegistered(WorkflowError):
    '''A call reserved for registered voters was made by an unknown identity.

    :param voter_id: Identity of the rejected caller.
    '''
    def __init__(self, voter_id: Any):
        self.voter_id = voter_id
        super().__init__(f'{voter_id!r} is not a registered voter')


class WrongPhase(WorkflowError):
    '''The call is not valid in the current workflow status.

    :param current: Workflow status at the time of the call.
    :param expected: Workflow status the call requires. None if the call is
        only valid in a later status that was not reached yet.
    '''
    def __init__(self, current: Any, expected: Optional[Any] = None):
        self.current = current
        self.expected = expected
        message = f'invalid in workflow status {current}'
        if expected is not None:
            message += f', must be {expected}'
        super().__init__(message)


class AlreadyRegistered(WorkflowError):
    '''The voter is registered already.'''
    def __init__(self, voter_id: Any):
        self.voter_id = voter_id
        super().__init__(f'voter {voter_id!r} is already registered')


class AlreadyVoted(WorkflowError):
    '''The voter has already cast their vote.'''
    def __init__(self, voter_id: Any):
        self.voter_id = voter_id
        super().__init__(f'voter {voter_id!r} has already voted')


class NoProposals(WorkflowError):
    '''Voting cannot start without any proposal to vote for.'''
    def __init__(self):
        super().__init__('no proposals registered, cannot open voting')


class InvalidProposal(WorkflowError):
    '''The proposal identifier does not name an existing proposal.

    :param proposal_id: The offending identifier.
    '''
    def __init__(self, proposal_id: Any):
        self.proposal_id = proposal_id
        super().__init__(f'invalid proposal: {proposal_id!r}')


class EmptyDescription(WorkflowError):
    '''A proposal was submitted with an empty description.'''
    def __init__(self):
        super().__init__('proposal description must not be empty')
