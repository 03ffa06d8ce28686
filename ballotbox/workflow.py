'''The election workflow state machine.

A single :class:`ElectionWorkflow` object runs one election from start to
finish:

1.  The administrator registers the voters (:meth:`register_voter`).
2.  The administrator opens the proposal session, registered voters submit
    proposals (:meth:`make_proposal`) and the administrator closes it.
3.  The administrator opens the voting session, every registered voter may
    vote once (:meth:`vote`) and the administrator closes it, which tallies
    the votes right away.
4.  Anyone can then read the winning proposal
    (:meth:`get_winning_proposal_description`).

Every operation that changes state takes the identity of the caller as its
first argument; who the caller is has to be established by the environment
(an authenticated session, a signed transaction...). The workflow only
decides whether that identity is the administrator, using an optional
predicate, and whether it is a registered voter.

All operations are atomic: a call is either fully applied, including its
notifications, or rejected with a :class:`ballotbox.errors.WorkflowError`
leaving the workflow untouched. Calls are serialized by a per-workflow lock
so the object can be shared between threads.
'''

import functools
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from ballotbox.errors import WorkflowError, Unauthorized, NotRegistered, \
    WrongPhase, AlreadyRegistered, AlreadyVoted, NoProposals, \
    InvalidProposal, EmptyDescription
from ballotbox.events import EventLog, Listener, VoterRegistered, \
    ProposalRegistered, Voted, WorkflowStatusChanged
from ballotbox.persist import scoped_class_name, serialize_value, \
    deserialize_value
from ballotbox.phase import WorkflowStatus, INITIAL_STATUS
from ballotbox.proposal import Proposal
from ballotbox.tally import PluralityTally
from ballotbox.voter import Voter


logger = logging.getLogger(__name__)

AdminPredicate = Callable[['ElectionWorkflow', Any], bool]


def is_designated_administrator(workflow: 'ElectionWorkflow',
                                caller: Any,
                                ) -> bool:
    '''Default administrator check: the caller equals the designated one.'''
    return caller == workflow.administrator


def _atomic(method):
    '''Run the method under the workflow lock, logging rejections.'''
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except WorkflowError as err:
                logger.debug('%s rejected: %s', method.__name__, err)
                raise
    return wrapper


class ElectionWorkflow:
    '''A single election, from voter registration to the tallied result.

    :param administrator: Identity of the administrator, who registers the
        voters and moves the workflow between its statuses.
    :param is_administrator: A predicate called with the workflow and the
        caller identity that decides whether the caller is the
        administrator. The default compares the caller to
        ``administrator``. Must be a module-level function for the workflow
        to be serializable by :mod:`ballotbox.persist`.
    '''
    def __init__(self,
                 administrator: Any,
                 is_administrator: Optional[AdminPredicate] = None,
                 ):
        self.administrator = administrator
        self.is_administrator = is_administrator
        self.events = EventLog()
        self._voters: Dict[Any, Voter] = {}
        self._proposals: List[Proposal] = []
        self._status = INITIAL_STATUS
        self._winning_proposal_id: Optional[int] = None
        self._tally = PluralityTally()
        self._lock = threading.RLock()

    # administrator operations

    @_atomic
    def register_voter(self, caller: Any, voter_id: Any) -> None:
        '''Register a voter, allowing them to propose and vote.

        :param caller: Must be the administrator.
        :param voter_id: Identity of the voter to register.
        :raises Unauthorized: If the caller is not the administrator.
        :raises WrongPhase: If voter registration is over.
        :raises AlreadyRegistered: If the voter is registered already.
        '''
        self._require_admin(caller)
        self._require_status(WorkflowStatus.REGISTERING_VOTERS)
        voter = self._voters.get(voter_id)
        if voter is not None and voter.is_registered:
            raise AlreadyRegistered(voter_id)
        self._voters[voter_id] = Voter(is_registered=True)
        logger.info('registered voter %r', voter_id)
        self.events.emit(VoterRegistered(voter_id))

    @_atomic
    def open_proposal_session(self, caller: Any) -> None:
        '''End voter registration and start accepting proposals.'''
        self._require_admin(caller)
        self._require_status(WorkflowStatus.REGISTERING_VOTERS)
        self.events.emit(self._advance())

    @_atomic
    def close_proposal_session(self, caller: Any) -> None:
        '''Stop accepting proposals.'''
        self._require_admin(caller)
        self._require_status(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
        self.events.emit(self._advance())

    @_atomic
    def open_vote_session(self, caller: Any) -> None:
        '''Start the voting session.

        :raises NoProposals: If nobody submitted a proposal.
        '''
        self._require_admin(caller)
        self._require_status(WorkflowStatus.PROPOSALS_REGISTRATION_ENDED)
        if not self._proposals:
            raise NoProposals()
        self.events.emit(self._advance())

    @_atomic
    def close_vote_session(self, caller: Any) -> None:
        '''End the voting session and tally the votes.

        Passes through the ended voting session status straight to the
        tallied status within this single call, emitting a status change
        notification for both steps.
        '''
        self._require_admin(caller)
        self._require_status(WorkflowStatus.VOTING_SESSION_STARTED)
        winner = self._tally.evaluate(self._proposals)
        closed = self._advance()
        self._winning_proposal_id = winner
        logger.info('proposal %d won with %d votes',
                    winner, self._proposals[winner].vote_count)
        tallied = self._advance()
        self.events.emit(closed, tallied)

    # voter operations

    @_atomic
    def make_proposal(self, caller: Any, description: str) -> int:
        '''Submit a proposal.

        :param caller: Must be a registered voter.
        :param description: Text of the proposal; must not be empty.
        :returns: Identifier (index) of the new proposal.
        :raises NotRegistered: If the caller is not a registered voter.
        :raises WrongPhase: If the proposal session is not open.
        :raises EmptyDescription: If the description is empty.
        '''
        self._require_voter(caller)
        self._require_status(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
        if not isinstance(description, str):
            raise TypeError(f'proposal description must be a string,'
                            f' got {description!r}')
        if not description:
            raise EmptyDescription()
        self._proposals.append(Proposal(description))
        proposal_id = len(self._proposals) - 1
        logger.info('voter %r registered proposal %d: %s',
                    caller, proposal_id, description)
        self.events.emit(ProposalRegistered(proposal_id))
        return proposal_id

    @_atomic
    def vote(self, caller: Any, proposal_id: int) -> None:
        '''Cast the caller's vote for a proposal.

        Each registered voter can vote exactly once.

        :param caller: Must be a registered voter.
        :param proposal_id: Identifier of the chosen proposal.
        :raises NotRegistered: If the caller is not a registered voter.
        :raises WrongPhase: If the voting session is not open.
        :raises AlreadyVoted: If the caller has voted already.
        :raises InvalidProposal: If there is no such proposal.
        '''
        voter = self._require_voter(caller)
        self._require_status(WorkflowStatus.VOTING_SESSION_STARTED)
        if voter.has_voted:
            raise AlreadyVoted(caller)
        proposal = self._lookup_proposal(proposal_id)
        proposal.vote_count += 1
        voter.has_voted = True
        voter.voted_proposal_id = proposal_id
        logger.info('voter %r voted for proposal %d', caller, proposal_id)
        self.events.emit(Voted(caller, proposal_id))

    # queries

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def proposal_count(self) -> int:
        return len(self._proposals)

    @property
    def voter_count(self) -> int:
        '''Number of registered voters.'''
        with self._lock:
            return sum(1 for voter in self._voters.values()
                       if voter.is_registered)

    @property
    def winning_proposal_id(self) -> int:
        '''Identifier of the winning proposal, once the votes are tallied.

        :raises WrongPhase: If the votes have not been tallied yet.
        '''
        with self._lock:
            self._require_status(WorkflowStatus.VOTES_TALLIED)
            return self._winning_proposal_id

    @_atomic
    def get_winning_proposal_description(self) -> str:
        '''Return the description of the winning proposal.

        Can be called by anyone, but only after the votes are tallied.

        :raises WrongPhase: If the votes have not been tallied yet.
        '''
        self._require_status(WorkflowStatus.VOTES_TALLIED)
        return self._proposals[self._winning_proposal_id].description

    def is_registered(self, voter_id: Any) -> bool:
        with self._lock:
            voter = self._voters.get(voter_id)
            return voter is not None and voter.is_registered

    @_atomic
    def get_voter(self, caller: Any, voter_id: Any) -> Voter:
        '''Return a copy of a voter record, as seen by a registered voter.

        Unknown identities give a blank, unregistered record.
        '''
        self._require_voter(caller)
        voter = self._voters.get(voter_id)
        return Voter() if voter is None else voter.copy()

    @_atomic
    def get_proposal(self, caller: Any, proposal_id: int) -> Proposal:
        '''Return a copy of a proposal, as seen by a registered voter.'''
        self._require_voter(caller)
        return self._lookup_proposal(proposal_id).copy()

    def subscribe(self, listener: Listener) -> None:
        '''Call the listener with every notification emitted from now on.'''
        self.events.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.events.unsubscribe(listener)

    # guards

    def _require_admin(self, caller: Any) -> None:
        predicate = self.is_administrator or is_designated_administrator
        if not predicate(self, caller):
            raise Unauthorized(caller)

    def _require_voter(self, caller: Any) -> Voter:
        voter = self._voters.get(caller)
        if voter is None or not voter.is_registered:
            raise NotRegistered(caller)
        return voter

    def _require_status(self, expected: WorkflowStatus) -> None:
        if self._status is not expected:
            raise WrongPhase(self._status, expected)

    def _lookup_proposal(self, proposal_id: int) -> Proposal:
        if (isinstance(proposal_id, bool)
                or not isinstance(proposal_id, int)
                or not 0 <= proposal_id < len(self._proposals)):
            raise InvalidProposal(proposal_id)
        proposal = self._proposals[proposal_id]
        if not proposal.description:
            raise InvalidProposal(proposal_id)
        return proposal

    def _advance(self) -> WorkflowStatusChanged:
        previous = self._status
        self._status = previous.next()
        logger.info('workflow status changed from %s to %s',
                    previous, self._status)
        return WorkflowStatusChanged(previous, self._status)

    # persistence

    def to_dict(self) -> Dict[str, Any]:
        '''Serialize the complete election state, including its event log.

        Subscribed listeners are not included.
        '''
        with self._lock:
            return {
                'class': scoped_class_name(self),
                'administrator': serialize_value(self.administrator),
                'is_administrator': serialize_value(self.is_administrator),
                'status': serialize_value(self._status),
                'voters': serialize_value(self._voters),
                'proposals': serialize_value(self._proposals),
                'winning_proposal_id': self._winning_proposal_id,
                'events': serialize_value(list(self.events)),
            }

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> 'ElectionWorkflow':
        '''Restore a workflow serialized by :meth:`to_dict`.

        :raises ValueError: If the serialized state is inconsistent.
        '''
        params = {key: deserialize_value(val) for key, val in params.items()}
        workflow = cls(
            params['administrator'],
            is_administrator=params.get('is_administrator'),
        )
        status = params.get('status', INITIAL_STATUS)
        if not isinstance(status, WorkflowStatus):
            raise ValueError(f'invalid workflow status: {status!r}')
        voters = params.get('voters', {})
        proposals = params.get('proposals', [])
        winner = params.get('winning_proposal_id')
        _check_consistency(status, voters, proposals, winner)
        workflow._status = status
        workflow._voters = dict(voters)
        workflow._proposals = list(proposals)
        workflow._winning_proposal_id = winner
        workflow.events = EventLog(params.get('events', []))
        return workflow

    def __repr__(self) -> str:
        return (f'<{self.__class__.__name__} {self._status}:'
                f' {len(self._voters)} voters,'
                f' {len(self._proposals)} proposals>')


def _check_consistency(status: WorkflowStatus,
                       voters: Dict[Any, Voter],
                       proposals: List[Proposal],
                       winner: Optional[int],
                       ) -> None:
    if (winner is not None) != (status is WorkflowStatus.VOTES_TALLIED):
        raise ValueError(f'winning proposal {winner!r} invalid in {status}')
    if winner is not None and not 0 <= winner < len(proposals):
        raise ValueError(f'winning proposal {winner!r} out of range')
    for i, proposal in enumerate(proposals):
        if not isinstance(proposal, Proposal):
            raise ValueError(f'invalid proposal record at {i}')
        if not isinstance(proposal.description, str) \
                or not proposal.description:
            raise ValueError(f'proposal {i} has no description')
        if not isinstance(proposal.vote_count, int) \
                or isinstance(proposal.vote_count, bool) \
                or proposal.vote_count < 0:
            raise ValueError(f'proposal {i} has an invalid vote count')
    counts = [0] * len(proposals)
    for voter_id, voter in voters.items():
        if not isinstance(voter, Voter):
            raise ValueError(f'invalid voter record for {voter_id!r}')
        if voter.has_voted:
            if not 0 <= voter.voted_proposal_id < len(proposals):
                raise ValueError(f'voter {voter_id!r} voted for'
                                 f' unknown proposal')
            counts[voter.voted_proposal_id] += 1
    if counts != [proposal.vote_count for proposal in proposals]:
        raise ValueError('proposal vote counts do not match the votes cast')
