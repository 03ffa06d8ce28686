
import sys
import os
import json
import threading

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
import ballotbox.persist
from ballotbox.errors import WorkflowError, Unauthorized, NotRegistered, \
    WrongPhase, AlreadyRegistered, AlreadyVoted, NoProposals, \
    InvalidProposal, EmptyDescription
from ballotbox.events import VoterRegistered, ProposalRegistered, Voted, \
    WorkflowStatusChanged
from ballotbox.phase import WorkflowStatus, ORDER
from ballotbox.voter import Voter
from ballotbox.workflow import ElectionWorkflow

ADMIN = 'admin'
VOTERS = ['A', 'B', 'C']
PROPOSALS = ['Pizza', 'Sushi']


def is_board_member(workflow, caller):
    return isinstance(caller, str) and caller.startswith('board:')


def advance_to(status, voters=VOTERS, proposals=PROPOSALS):
    '''Create a workflow and drive it to the given status.'''
    wf = ElectionWorkflow(ADMIN)
    for voter in voters:
        wf.register_voter(ADMIN, voter)
    if status is WorkflowStatus.REGISTERING_VOTERS:
        return wf
    wf.open_proposal_session(ADMIN)
    if status is WorkflowStatus.PROPOSALS_REGISTRATION_STARTED:
        return wf
    for voter, description in zip(voters, proposals):
        wf.make_proposal(voter, description)
    wf.close_proposal_session(ADMIN)
    if status is WorkflowStatus.PROPOSALS_REGISTRATION_ENDED:
        return wf
    wf.open_vote_session(ADMIN)
    if status is WorkflowStatus.VOTING_SESSION_STARTED:
        return wf
    if status is WorkflowStatus.VOTING_SESSION_ENDED:
        # closing the session tallies at once, so restore the state instead
        state = wf.to_dict()
        state['status'] = ballotbox.persist.serialize_value(status)
        return ElectionWorkflow.from_dict(state)
    wf.close_vote_session(ADMIN)
    return wf


def snapshot(wf):
    return json.dumps(ballotbox.persist.to_dict(wf), sort_keys=True)


def test_initial_state():
    wf = ElectionWorkflow(ADMIN)
    assert wf.status is WorkflowStatus.REGISTERING_VOTERS
    assert wf.proposal_count == 0
    assert wf.voter_count == 0
    assert len(wf.events) == 0
    with pytest.raises(WrongPhase):
        wf.winning_proposal_id


def test_end_to_end():
    wf = ElectionWorkflow(ADMIN)
    for voter in VOTERS:
        wf.register_voter(ADMIN, voter)
    wf.open_proposal_session(ADMIN)
    assert wf.make_proposal('A', 'Pizza') == 0
    assert wf.make_proposal('B', 'Sushi') == 1
    wf.close_proposal_session(ADMIN)
    wf.open_vote_session(ADMIN)
    wf.vote('A', 0)
    wf.vote('B', 1)
    wf.vote('C', 0)
    wf.close_vote_session(ADMIN)
    assert wf.get_proposal('A', 0).vote_count == 2
    assert wf.get_proposal('A', 1).vote_count == 1
    assert wf.winning_proposal_id == 0
    assert wf.status is WorkflowStatus.VOTES_TALLIED
    assert wf.get_winning_proposal_description() == 'Pizza'
    assert wf.get_voter('B', 'C') == Voter(True, True, 0)


def test_end_to_end_events():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    wf.vote('A', 0)
    wf.vote('B', 1)
    wf.vote('C', 0)
    wf.close_vote_session(ADMIN)
    S = WorkflowStatus
    assert list(wf.events) == [
        VoterRegistered('A'),
        VoterRegistered('B'),
        VoterRegistered('C'),
        WorkflowStatusChanged(S.REGISTERING_VOTERS,
                              S.PROPOSALS_REGISTRATION_STARTED),
        ProposalRegistered(0),
        ProposalRegistered(1),
        WorkflowStatusChanged(S.PROPOSALS_REGISTRATION_STARTED,
                              S.PROPOSALS_REGISTRATION_ENDED),
        WorkflowStatusChanged(S.PROPOSALS_REGISTRATION_ENDED,
                              S.VOTING_SESSION_STARTED),
        Voted('A', 0),
        Voted('B', 1),
        Voted('C', 0),
        WorkflowStatusChanged(S.VOTING_SESSION_STARTED,
                              S.VOTING_SESSION_ENDED),
        WorkflowStatusChanged(S.VOTING_SESSION_ENDED, S.VOTES_TALLIED),
    ]


@pytest.mark.parametrize(('ballots', 'winner'), [
    ({'A': 0, 'B': 1}, 0),
    ({'A': 1, 'B': 0}, 0),
    ({'A': 1, 'B': 1, 'C': 0}, 1),
    ({}, 0),
    ({'C': 1}, 1),
])
def test_winner(ballots, winner):
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    for voter, proposal_id in ballots.items():
        wf.vote(voter, proposal_id)
    wf.close_vote_session(ADMIN)
    assert wf.winning_proposal_id == winner
    assert wf.get_winning_proposal_description() == PROPOSALS[winner]


def test_tie_first_proposed_wins():
    voters = ['A', 'B']
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED, voters=voters)
    wf.vote('B', 1)
    wf.vote('A', 0)
    wf.close_vote_session(ADMIN)
    assert wf.winning_proposal_id == 0
    assert wf.get_winning_proposal_description() == 'Pizza'


def test_double_vote():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    wf.vote('A', 0)
    before = snapshot(wf)
    with pytest.raises(AlreadyVoted) as excinfo:
        wf.vote('A', 1)
    assert excinfo.value.voter_id == 'A'
    assert snapshot(wf) == before
    assert wf.get_proposal('A', 0).vote_count == 1
    assert wf.get_proposal('A', 1).vote_count == 0
    assert wf.get_voter('A', 'A').voted_proposal_id == 0


def test_register_voter_twice():
    wf = advance_to(WorkflowStatus.REGISTERING_VOTERS)
    with pytest.raises(AlreadyRegistered):
        wf.register_voter(ADMIN, 'A')
    assert wf.voter_count == 3


def test_admin_can_register_self():
    wf = ElectionWorkflow(ADMIN)
    wf.register_voter(ADMIN, ADMIN)
    wf.open_proposal_session(ADMIN)
    assert wf.make_proposal(ADMIN, 'Tacos') == 0


def test_admin_is_not_a_voter():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
    with pytest.raises(NotRegistered) as excinfo:
        wf.make_proposal(ADMIN, 'Tacos')
    assert excinfo.value.voter_id == ADMIN


def test_no_proposals():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_ENDED, proposals=[])
    with pytest.raises(NoProposals):
        wf.open_vote_session(ADMIN)
    assert wf.status is WorkflowStatus.PROPOSALS_REGISTRATION_ENDED


def test_empty_description():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
    with pytest.raises(EmptyDescription):
        wf.make_proposal('A', '')
    assert wf.proposal_count == 0


def test_description_type():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
    with pytest.raises(TypeError):
        wf.make_proposal('A', 42)


def test_any_voter_may_propose_many():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_STARTED)
    assert [wf.make_proposal('C', desc) for desc in 'XYZ'] == [0, 1, 2]


@pytest.mark.parametrize('proposal_id', [-1, 2, 100, True, '0', None, 1.0])
def test_invalid_proposal(proposal_id):
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    before = snapshot(wf)
    with pytest.raises(InvalidProposal):
        wf.vote('A', proposal_id)
    assert snapshot(wf) == before
    assert not wf.get_voter('A', 'A').has_voted


def test_unhashable_voter():
    wf = ElectionWorkflow(ADMIN)
    with pytest.raises(TypeError):
        wf.register_voter(ADMIN, ['A'])
    assert wf.voter_count == 0


@pytest.mark.parametrize('status', [
    status for status in ORDER if status is not WorkflowStatus.VOTES_TALLIED
])
def test_winner_unreadable_before_tally(status):
    wf = advance_to(status)
    with pytest.raises(WrongPhase) as excinfo:
        wf.get_winning_proposal_description()
    assert excinfo.value.current is status
    assert excinfo.value.expected is WorkflowStatus.VOTES_TALLIED
    with pytest.raises(WrongPhase):
        wf.winning_proposal_id


ADMIN_ACTIONS = {
    'register_voter': (('D', ), WorkflowStatus.REGISTERING_VOTERS),
    'open_proposal_session': ((), WorkflowStatus.REGISTERING_VOTERS),
    'close_proposal_session': (
        (), WorkflowStatus.PROPOSALS_REGISTRATION_STARTED
    ),
    'open_vote_session': ((), WorkflowStatus.PROPOSALS_REGISTRATION_ENDED),
    'close_vote_session': ((), WorkflowStatus.VOTING_SESSION_STARTED),
}
VOTER_ACTIONS = {
    'make_proposal': (('Tacos', ), WorkflowStatus.PROPOSALS_REGISTRATION_STARTED),
    'vote': ((0, ), WorkflowStatus.VOTING_SESSION_STARTED),
}


@pytest.mark.parametrize(('status', 'action'), [
    (status, action) for status in ORDER for action in ADMIN_ACTIONS
])
def test_admin_actions_unauthorized(status, action):
    wf = advance_to(status)
    args, required = ADMIN_ACTIONS[action]
    before = snapshot(wf)
    # the role check precedes the status check
    with pytest.raises(Unauthorized) as excinfo:
        getattr(wf, action)('A', *args)
    assert excinfo.value.caller == 'A'
    assert snapshot(wf) == before


@pytest.mark.parametrize(('status', 'action'), [
    (status, action) for status in ORDER for action in VOTER_ACTIONS
])
def test_voter_actions_unregistered(status, action):
    wf = advance_to(status)
    args, required = VOTER_ACTIONS[action]
    before = snapshot(wf)
    with pytest.raises(NotRegistered):
        getattr(wf, action)('Z', *args)
    assert snapshot(wf) == before


@pytest.mark.parametrize(('status', 'action', 'caller', 'args', 'required'), [
    (status, action, ADMIN, args, required)
    for action, (args, required) in ADMIN_ACTIONS.items()
    for status in ORDER if status is not required
] + [
    (status, action, 'A', args, required)
    for action, (args, required) in VOTER_ACTIONS.items()
    for status in ORDER if status is not required
])
def test_wrong_phase(status, action, caller, args, required):
    wf = advance_to(status)
    before = snapshot(wf)
    with pytest.raises(WrongPhase) as excinfo:
        getattr(wf, action)(caller, *args)
    assert excinfo.value.current is status
    assert excinfo.value.expected is required
    assert snapshot(wf) == before


def test_redundant_session_calls_rejected():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    with pytest.raises(WrongPhase):
        wf.open_vote_session(ADMIN)
    wf.close_vote_session(ADMIN)
    with pytest.raises(WrongPhase):
        wf.close_vote_session(ADMIN)


def test_voting_session_ended_is_transient():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    seen = []
    wf.subscribe(seen.append)
    wf.close_vote_session(ADMIN)
    assert [event.new_status for event in seen] == [
        WorkflowStatus.VOTING_SESSION_ENDED, WorkflowStatus.VOTES_TALLIED
    ]
    assert wf.status is WorkflowStatus.VOTES_TALLIED
    stopped = advance_to(WorkflowStatus.VOTING_SESSION_ENDED)
    assert stopped.status is WorkflowStatus.VOTING_SESSION_ENDED
    with pytest.raises(WrongPhase):
        stopped.get_winning_proposal_description()


def test_status_changes_chain():
    wf = advance_to(WorkflowStatus.VOTES_TALLIED)
    changes = [event for event in wf.events
               if isinstance(event, WorkflowStatusChanged)]
    assert [change.previous_status for change in changes] == list(ORDER[:-1])
    for change in changes:
        assert change.new_status is change.previous_status.next()


@pytest.mark.parametrize('status', ORDER)
def test_status_never_regresses(status):
    wf = advance_to(status)
    calls = [
        (getattr(wf, action), ADMIN, args)
        for action, (args, _) in ADMIN_ACTIONS.items()
    ] + [
        (getattr(wf, action), 'A', args)
        for action, (args, _) in VOTER_ACTIONS.items()
    ]
    for method, caller, args in calls:
        previous = wf.status
        try:
            method(caller, *args)
        except WorkflowError:
            assert wf.status is previous
        else:
            assert not wf.status.precedes(previous)


def test_vote_counts_match_votes():
    voters = [f'v{i}' for i in range(10)]
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED, voters=voters,
                    proposals=['X', 'Y', 'Z'])
    choices = [i % 3 for i in range(len(voters))]
    for voter, choice in zip(voters, choices):
        wf.vote(voter, choice)
    for proposal_id in range(3):
        assert (wf.get_proposal('v0', proposal_id).vote_count
                == choices.count(proposal_id))
    wf.close_vote_session(ADMIN)
    assert wf.winning_proposal_id == 0


def test_custom_admin_predicate():
    wf = ElectionWorkflow('board:chair', is_administrator=is_board_member)
    wf.register_voter('board:secretary', 'A')
    with pytest.raises(Unauthorized):
        wf.open_proposal_session('A')
    wf.open_proposal_session('board:chair')
    assert wf.status is WorkflowStatus.PROPOSALS_REGISTRATION_STARTED


def test_get_voter_unknown():
    wf = advance_to(WorkflowStatus.REGISTERING_VOTERS)
    assert wf.get_voter('A', 'nobody') == Voter()
    assert not wf.is_registered('nobody')
    assert wf.is_registered('B')


def test_get_voter_is_copy():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)
    record = wf.get_voter('A', 'A')
    record.has_voted = True
    record.voted_proposal_id = 1
    wf.vote('A', 0)
    assert wf.get_voter('A', 'A').voted_proposal_id == 0


def test_get_proposal():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_ENDED)
    proposal = wf.get_proposal('B', 1)
    assert proposal.description == 'Sushi'
    proposal.vote_count = 100
    assert wf.get_proposal('B', 1).vote_count == 0
    with pytest.raises(InvalidProposal):
        wf.get_proposal('B', 2)
    with pytest.raises(NotRegistered):
        wf.get_proposal(ADMIN, 0)


def test_listener_receives_events_in_order():
    wf = ElectionWorkflow(ADMIN)
    received = []
    wf.subscribe(received.append)
    wf.register_voter(ADMIN, 'A')
    with pytest.raises(AlreadyRegistered):
        wf.register_voter(ADMIN, 'A')
    wf.open_proposal_session(ADMIN)
    wf.unsubscribe(received.append)
    wf.make_proposal('A', 'Pizza')
    assert received == [
        VoterRegistered('A'),
        WorkflowStatusChanged(WorkflowStatus.REGISTERING_VOTERS,
                              WorkflowStatus.PROPOSALS_REGISTRATION_STARTED),
    ]
    assert len(wf.events) == 3


def test_failing_listener_keeps_commit():
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED)

    def explode(event):
        raise RuntimeError('listener failure')

    wf.subscribe(explode)
    with pytest.raises(RuntimeError):
        wf.close_vote_session(ADMIN)
    assert wf.status is WorkflowStatus.VOTES_TALLIED
    assert isinstance(wf.events[-1], WorkflowStatusChanged)
    assert wf.events[-1].new_status is WorkflowStatus.VOTES_TALLIED


def test_independent_instances():
    first = advance_to(WorkflowStatus.VOTES_TALLIED)
    second = ElectionWorkflow(ADMIN)
    assert second.status is WorkflowStatus.REGISTERING_VOTERS
    assert second.voter_count == 0
    assert first.voter_count == 3


def test_concurrent_votes():
    voters = [f'v{i}' for i in range(50)]
    wf = advance_to(WorkflowStatus.VOTING_SESSION_STARTED, voters=voters)
    errors = []

    def cast(voter):
        for proposal_id in (0, 1):
            try:
                wf.vote(voter, proposal_id)
            except AlreadyVoted as err:
                errors.append(err)

    threads = [threading.Thread(target=cast, args=(v, )) for v in voters]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(errors) == len(voters)
    assert wf.get_proposal('v0', 0).vote_count == len(voters)
    assert wf.get_proposal('v0', 1).vote_count == 0
    assert sum(isinstance(e, Voted) for e in wf.events) == len(voters)


def test_repr():
    wf = advance_to(WorkflowStatus.PROPOSALS_REGISTRATION_ENDED)
    assert 'ProposalsRegistrationEnded' in repr(wf)
