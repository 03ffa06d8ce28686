'''Proposals - the options the voters choose from.

Proposals form an append-only sequence; the position of a proposal in it is
its identifier and never changes.
'''

import dataclasses

from ballotbox.persist import simple_serialization


@simple_serialization
@dataclasses.dataclass
class Proposal:
    '''A proposal submitted by a registered voter.

    :param description: Text of the proposal. Never empty for proposals
        accepted by the workflow.
    :param vote_count: Number of votes the proposal has received.
    '''
    description: str
    vote_count: int = 0

    def copy(self) -> 'Proposal':
        return dataclasses.replace(self)
