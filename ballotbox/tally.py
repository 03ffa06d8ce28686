'''Plurality tally of the proposals.

The proposal with the most votes wins. Ties are broken by registration order:
the earliest registered proposal among those tied for the most votes wins,
which makes the result fully deterministic.
'''

import logging
from typing import List, Sequence

from ballotbox.persist import simple_serialization
from ballotbox.proposal import Proposal


logger = logging.getLogger(__name__)


def tied_best(vote_counts: Sequence[int]) -> List[int]:
    '''Return indexes of all entries sharing the highest vote count.

    :param vote_counts: Vote counts in proposal order.
    :returns: Ascending list of indexes; empty for empty input.
    '''
    if not vote_counts:
        return []
    best = max(vote_counts)
    return [i for i, count in enumerate(vote_counts) if count == best]


@simple_serialization
class PluralityTally:
    '''Simple plurality (first-past-the-post) over a list of proposals.

    Scans the proposals once, keeping the first one that has strictly more
    votes than all the previous ones, so the earliest registered proposal
    wins a tie.
    '''
    def evaluate(self, proposals: Sequence[Proposal]) -> int:
        '''Select the winning proposal.

        :param proposals: Proposals in registration order.
        :returns: Index of the winning proposal.
        :raises ValueError: If there are no proposals.
        '''
        if not proposals:
            raise ValueError('cannot tally an empty list of proposals')
        winner = 0
        for i in range(1, len(proposals)):
            if proposals[i].vote_count > proposals[winner].vote_count:
                winner = i
        tied = tied_best([proposal.vote_count for proposal in proposals])
        if len(tied) > 1:
            logger.info('proposals %s tied with %d votes, %d registered first',
                        tied, proposals[winner].vote_count, winner)
        return winner
