"""Load and replay scripted call histories.

The state of an election is fully determined by the sequence of calls made
to it and the identities of their callers. A call script records such a
sequence in a JSON lines form:

-   The first (non-comment) line is a header object naming the
    administrator: ``{"administrator": "admin"}``.
-   Every further line is a single call:
    ``{"caller": "alice", "action": "vote", "args": [0]}``.
-   Blank lines and lines starting with ``#`` are ignored.

:func:`replay` runs a script on a fresh workflow. Calls rejected by the
workflow rules do not stop the replay; their errors are reported in the
outcomes.
"""

from __future__ import annotations

import dataclasses
import inspect
import json
import logging
import typing
from typing import Any, Callable, Iterable, List, Optional, TextIO, Tuple

from ballotbox.errors import WorkflowError
from ballotbox.workflow import ElectionWorkflow


logger = logging.getLogger(__name__)

ACTIONS: Tuple[str, ...] = (
    'register_voter',
    'open_proposal_session',
    'close_proposal_session',
    'make_proposal',
    'open_vote_session',
    'vote',
    'close_vote_session',
    'get_winning_proposal_description',
    'get_voter',
    'get_proposal',
)
ANONYMOUS_ACTIONS: Tuple[str, ...] = ('get_winning_proposal_description', )


class ScriptParseError(Exception):
    """An input that is not a valid call script was detected.

    :param message: What is wrong.
    :param line_no: One-based number of the offending line, if known.
    """
    def __init__(self, message: str, line_no: Optional[int] = None):
        self.line_no = line_no
        if line_no is not None:
            message = f'line {line_no}: {message}'
        super().__init__(message)


@dataclasses.dataclass
class ScriptedCall:
    """A single call of a workflow operation."""
    action: str
    caller: Any = None
    args: List[Any] = dataclasses.field(default_factory=list)
    line_no: Optional[int] = None


@dataclasses.dataclass
class CallScript:
    """A call history for a single election."""
    administrator: Any
    calls: List[ScriptedCall] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class ReplayOutcome:
    """Result of replaying a single call.

    Exactly one of ``result`` and ``error`` is meaningful: ``error`` is set
    if the workflow rejected the call.
    """
    call: ScriptedCall
    result: Any = None
    error: Optional[WorkflowError] = None

    @property
    def accepted(self) -> bool:
        return self.error is None


def load_lines(lines: Iterable[str]) -> CallScript:
    """Parse a call script from its lines."""
    script = None
    for line_no, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as err:
            raise ScriptParseError(f'invalid JSON: {err}', line_no) from err
        if not isinstance(record, dict):
            raise ScriptParseError('JSON object expected', line_no)
        if script is None:
            if 'administrator' not in record:
                raise ScriptParseError('header must name the administrator',
                                       line_no)
            script = CallScript(
                administrator=_identity(record['administrator'], line_no)
            )
        else:
            script.calls.append(parse_call(record, line_no))
    if script is None:
        raise ScriptParseError('empty call script: header missing')
    return script


def parse_call(record: dict, line_no: Optional[int] = None) -> ScriptedCall:
    """Create a scripted call from its decoded JSON object.

    The number of arguments is checked against the workflow operation, so a
    malformed call is reported with its line instead of failing the replay.
    """
    action = record.get('action')
    if action not in ACTIONS:
        raise ScriptParseError(f'unknown action: {action!r}', line_no)
    anonymous = action in ANONYMOUS_ACTIONS
    if 'caller' not in record and not anonymous:
        raise ScriptParseError(f'caller missing for {action}', line_no)
    args = record.get('args', [])
    if not isinstance(args, list):
        raise ScriptParseError('args must be a list', line_no)
    call = ScriptedCall(
        action=action,
        caller=_identity(record.get('caller'), line_no),
        args=[_identity(arg, line_no) for arg in args],
        line_no=line_no,
    )
    signature = inspect.signature(getattr(ElectionWorkflow, action))
    try:
        signature.bind(None, *_call_args(call))
    except TypeError as err:
        raise ScriptParseError(f'bad arguments for {action}: {err}',
                               line_no) from err
    return call


def _identity(value: Any, line_no: Optional[int] = None) -> Any:
    # JSON arrays would be unusable as voter identities
    if isinstance(value, list):
        return tuple(_identity(item, line_no) for item in value)
    elif isinstance(value, dict):
        raise ScriptParseError('JSON objects cannot be used as call values',
                               line_no)
    return value


def _call_args(call: ScriptedCall) -> List[Any]:
    if call.action in ANONYMOUS_ACTIONS:
        return list(call.args)
    return [call.caller] + list(call.args)


def loaders(line_loader: Callable[..., CallScript]
            ) -> Tuple[Callable[..., CallScript], Callable[..., CallScript]]:
    """Create load() and loads() functions from an iterating function."""
    return_annot = typing.get_type_hints(line_loader).get('return')
    if return_annot is None:
        return_annot = Any

    def load(file: TextIO, **kwargs) -> return_annot:
        return line_loader(file, **kwargs)

    def loads(text: str, **kwargs) -> return_annot:
        return line_loader(iter(text.split('\n')), **kwargs)

    return load, loads


load, loads = loaders(load_lines)


def perform(workflow: ElectionWorkflow, call: ScriptedCall) -> ReplayOutcome:
    """Perform a single scripted call on the workflow."""
    method = getattr(workflow, call.action)
    try:
        result = method(*_call_args(call))
    except WorkflowError as err:
        logger.info('call %s by %r rejected: %s', call.action, call.caller, err)
        return ReplayOutcome(call, error=err)
    return ReplayOutcome(call, result=result)


def replay(script: CallScript,
           workflow: Optional[ElectionWorkflow] = None,
           ) -> Tuple[ElectionWorkflow, List[ReplayOutcome]]:
    """Run all calls of the script.

    :param script: The call script to replay.
    :param workflow: Workflow to run the calls on. A fresh one administered
        by the script's administrator is created by default.
    :returns: The workflow after the replay and the outcomes of all calls,
        in script order.
    """
    if workflow is None:
        workflow = ElectionWorkflow(script.administrator)
    outcomes = [perform(workflow, call) for call in script.calls]
    logger.debug('replayed %d calls, %d rejected', len(outcomes),
                 sum(1 for outcome in outcomes if not outcome.accepted))
    return workflow, outcomes
