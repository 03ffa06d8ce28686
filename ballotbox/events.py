'''Notifications emitted by the election workflow.

Every accepted state change produces exactly one notification per effect,
recorded in the workflow's :class:`EventLog` in order of occurrence and
dispatched synchronously to its subscribers. Rejected calls emit nothing.
'''

import dataclasses
import logging
from typing import Any, Callable, Iterator, List, Union

from ballotbox.persist import simple_serialization, scoped_class_name, \
    serialize_value
from ballotbox.phase import WorkflowStatus


logger = logging.getLogger(__name__)


@simple_serialization
@dataclasses.dataclass(frozen=True)
class VoterRegistered:
    '''The administrator registered a voter.'''
    voter_id: Any


@simple_serialization
@dataclasses.dataclass(frozen=True)
class ProposalRegistered:
    '''A voter submitted a proposal, stored under the given index.'''
    proposal_id: int


@simple_serialization
@dataclasses.dataclass(frozen=True)
class Voted:
    '''A voter cast their vote for a proposal.'''
    voter_id: Any
    proposal_id: int


@simple_serialization
@dataclasses.dataclass(frozen=True)
class WorkflowStatusChanged:
    '''The workflow moved from one status to its successor.'''
    previous_status: WorkflowStatus
    new_status: WorkflowStatus


Event = Union[VoterRegistered, ProposalRegistered, Voted, WorkflowStatusChanged]
Listener = Callable[[Event], Any]


class EventLog:
    '''An append-only, ordered record of workflow notifications.

    Subscribed listeners are called with every event right after it is
    recorded, in the order of subscription. A listener raising an exception
    does not undo the recording; the exception propagates to the caller of
    the workflow operation.

    :param events: Events recorded earlier, e.g. when restoring a snapshot.
    '''
    def __init__(self, events: List[Event] = ()):
        self._events = list(events)
        self._listeners = []

    def subscribe(self, listener: Listener) -> None:
        '''Call the listener with every event emitted from now on.'''
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        '''Stop calling a previously subscribed listener.

        :raises ValueError: If the listener is not subscribed.
        '''
        self._listeners.remove(listener)

    def emit(self, *events: Event) -> None:
        '''Record the events and dispatch them to the listeners.

        All events are recorded before the first listener is called, so
        a failing listener cannot prevent any of them from being logged.
        '''
        self._events.extend(events)
        for event in events:
            logger.debug('emitting %s', event)
            for listener in list(self._listeners):
                listener(event)

    def to_dict(self):
        return {
            'class': scoped_class_name(self),
            'events': serialize_value(self._events),
        }

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index):
        return self._events[index]

    def __repr__(self) -> str:
        return f'EventLog({self._events!r})'
