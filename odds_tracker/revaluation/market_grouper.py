import logging
from typing import Dict, Iterable, List

from odds_tracker.revaluation.models import Position

logger = logging.getLogger(__name__)


def group_by_market(positions: Iterable[Position]) -> Dict[str, List[str]]:
    """
    Group position ids by the market they reference, so a market shared
    by N positions is fetched once. Positions without a market id are
    dropped with a warning.
    """
    groups: Dict[str, List[str]] = {}
    for position in positions:
        if not position.market_id:
            logger.warning(f"⚠️ Position {position.id} has no market_id, skipping")
            continue
        groups.setdefault(position.market_id, []).append(position.id)
    return groups


def index_by_id(positions: Iterable[Position]) -> Dict[str, Position]:
    return {position.id: position for position in positions}
