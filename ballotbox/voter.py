'''Voter records.

A voter is keyed by an opaque identity supplied by the environment (an account
address, a user name - any hashable value will do). Identities that were never
registered read as the default, unregistered :class:`Voter`.
'''

import dataclasses
from typing import Optional

from ballotbox.persist import simple_serialization


@simple_serialization
@dataclasses.dataclass
class Voter:
    '''Registration and participation state of a single voter.

    :param is_registered: Whether the administrator registered the voter.
    :param has_voted: Whether the voter has cast their (only) vote.
    :param voted_proposal_id: Index of the proposal the voter voted for;
        set if and only if the voter has voted.
    '''
    is_registered: bool = False
    has_voted: bool = False
    voted_proposal_id: Optional[int] = None

    def __post_init__(self):
        if self.has_voted and not self.is_registered:
            raise ValueError('unregistered voter cannot have voted')
        if self.has_voted != (self.voted_proposal_id is not None):
            raise ValueError(
                'voted proposal must be given if and only if the voter voted'
            )

    def copy(self) -> 'Voter':
        return dataclasses.replace(self)
