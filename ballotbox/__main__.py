"""A commandline tool to replay the call history of an election.

Reads a call script (JSON lines: an administrator header followed by one call
per line), runs it on a fresh election workflow and reports the outcome of
every call, the emitted notifications and the final result.
"""

import argparse
import io
import logging
import sys
import warnings
from typing import List

import ballotbox.replay
from ballotbox.events import VoterRegistered, ProposalRegistered, Voted, \
    WorkflowStatusChanged
from ballotbox.phase import WorkflowStatus
from ballotbox.replay import CallScript, ReplayOutcome
from ballotbox.workflow import ElectionWorkflow

argparser = argparse.ArgumentParser(
    description=__doc__,
    formatter_class=argparse.ArgumentDefaultsHelpFormatter,
)
argparser.add_argument(
    '-i', '--input-file',
    type=argparse.FileType('r', encoding='utf8'),
    help='file to load the call script from',
)
argparser.add_argument(
    '-I', '--use-stdin',
    action='store_true',
    help='load the call script from standard input',
)
argparser.add_argument(
    '-e', '--show-events',
    action='store_true',
    help='list all notifications emitted during the replay',
)
argparser.add_argument(
    '-v', '--verbose',
    action='store_true',
    help='show all workflow log messages and other info',
)
argparser.add_argument(
    '-q', '--quiet',
    action='store_true',
    help='do not show any workflow log messages or other info',
)


def main(input_file: io.TextIOBase,
         use_stdin: bool = False,
         show_events: bool = False,
         verbose: bool = False,
         quiet: bool = False,
         ) -> None:
    logging.basicConfig(
        level=(
            logging.DEBUG if verbose
            else (logging.WARNING if quiet else logging.INFO)
        ),
        format='%(levelname)-10s %(message)s'
    )
    if use_stdin:
        input_file = sys.stdin
    script = ballotbox.replay.load(input_file)
    if not script.calls:
        warnings.warn('empty call script: nothing to replay, terminating')
        return
    show_script_stats(script)
    print()
    print('Replaying the calls...')
    workflow, outcomes = ballotbox.replay.replay(script)
    print()
    show_outcomes(outcomes)
    if show_events:
        print()
        show_events_full(workflow)
    print()
    show_result(workflow)


def show_script_stats(script: CallScript) -> None:
    callers = {call.caller for call in script.calls if call.caller is not None}
    print(f'Administrator: {script.administrator}')
    print(f'Received {len(script.calls)} calls'
          f' from {len(callers)} distinct callers')


def show_outcomes(outcomes: List[ReplayOutcome]) -> None:
    """Show one line per call, marking the rejected ones."""
    n_just_chars = len(str(len(outcomes)))
    for i, outcome in enumerate(outcomes, start=1):
        call = outcome.call
        args = ', '.join(repr(arg) for arg in call.args)
        desc = f'{call.action}({args})'
        if call.caller is not None:
            desc = f'{call.caller} {desc}'
        if outcome.accepted:
            verdict = 'ok'
            if outcome.result is not None:
                verdict += f' -> {outcome.result!r}'
        else:
            verdict = f'REJECTED ({outcome.error.__class__.__name__}:' \
                f' {outcome.error})'
        print(str(i).rjust(n_just_chars), ' ', desc, ' ', verdict)


def describe_event(event) -> str:
    if isinstance(event, VoterRegistered):
        return f'voter {event.voter_id} registered'
    elif isinstance(event, ProposalRegistered):
        return f'proposal {event.proposal_id} registered'
    elif isinstance(event, Voted):
        return f'{event.voter_id} voted for proposal {event.proposal_id}'
    elif isinstance(event, WorkflowStatusChanged):
        return f'status {event.previous_status} -> {event.new_status}'
    else:
        return repr(event)


def show_events_full(workflow: ElectionWorkflow) -> None:
    print('Notifications:')
    for event in workflow.events:
        print(' ' * 10 + describe_event(event))


def show_result(workflow: ElectionWorkflow) -> None:
    print(f'Final workflow status: {workflow.status}')
    if workflow.status is WorkflowStatus.VOTES_TALLIED:
        winner = workflow.winning_proposal_id
        print(f'Winning proposal: #{winner}'
              f' {workflow.get_winning_proposal_description()}')
    else:
        print('Votes not tallied yet')


if __name__ == '__main__':
    args = argparser.parse_args()
    if not args.input_file and not args.use_stdin:
        argparser.print_usage()
    else:
        main(**vars(args))
