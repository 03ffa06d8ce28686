"""Ballotbox - a single-election voting workflow.

An administrator registers eligible voters, the voters submit proposals and
then vote for one of them, and the proposal with the most votes wins.

The library is organized as follows:

-   The :mod:`workflow` module contains :class:`ElectionWorkflow`, the state
    machine that runs the election and enforces who may do what and when.
-   The statuses the election passes through are defined by
    :class:`WorkflowStatus` in the :mod:`phase` module.
-   Voter and proposal records are defined in the :mod:`voter` and
    :mod:`proposal` modules, the tallying rule in the :mod:`tally` module.
-   The workflow reports every change through notifications defined in the
    :mod:`events` module; rejected calls raise the errors from the
    :mod:`errors` module.
-   The :mod:`persist` module converts a workflow to a JSON-ready snapshot and
    back, and the :mod:`replay` module runs recorded call histories, also
    available from the command line as ``python -m ballotbox``.
"""

from ballotbox.errors import WorkflowError, Unauthorized, NotRegistered, \
    WrongPhase, AlreadyRegistered, AlreadyVoted, NoProposals, \
    InvalidProposal, EmptyDescription    # noqa: F401
from ballotbox.phase import WorkflowStatus    # noqa: F401
from ballotbox.workflow import ElectionWorkflow    # noqa: F401
