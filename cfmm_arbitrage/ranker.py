"""
Opportunity ranking.
"""

from typing import Iterable, List, Optional

from .utils import get_logger

logger = get_logger(__name__)


def rank_opportunities(opportunities: Iterable, min_profit: Optional[int] = None) -> List:
    """
    Order opportunities for the execution layer.

    Entries with non-positive expected profit (or below min_profit, when
    given) are dropped. The sort is stable, so equal profits keep their
    input order.

    Args:
        opportunities: Any mix of opportunity objects exposing expected_profit
        min_profit: Optional floor on expected profit (wad)

    Returns:
        List sorted by descending expected profit
    """
    floor = max(min_profit or 0, 0)
    kept = []
    dropped = 0
    for opp in opportunities:
        if opp.expected_profit <= 0 or opp.expected_profit < floor:
            dropped += 1
            continue
        kept.append(opp)
    if dropped:
        logger.debug(f"Dropped {dropped} opportunities below the profit floor")
    return sorted(kept, key=lambda opp: opp.expected_profit, reverse=True)
