import logging
from datetime import datetime
from typing import Callable, Dict

from odds_tracker.core.errors import PersistenceError
from odds_tracker.revaluation.models import MarketPriceSnapshot, Position, utc_now
from odds_tracker.revaluation.valuation import Valuation

logger = logging.getLogger(__name__)


def build_update(snapshot: MarketPriceSnapshot, valuation: Valuation, written_at: datetime) -> Dict:
    """Partial row written for one revalued position"""
    return {
        "current_market_odds": {
            "yes_price": snapshot.yes_price,
            "no_price": snapshot.no_price,
            "timestamp": snapshot.fetched_at.isoformat(),
        },
        "expected_payout": valuation.expected_payout,
        "unrealized_pnl": valuation.unrealized_pnl,
        "updated_at": written_at.isoformat(),
    }


class PersistenceGateway:
    """
    Writes revaluations back to the position store one position at a time.

    There is no multi-row transaction: a failed write is logged and
    reported to the caller, and sibling writes carry on regardless.
    Positions that are no longer OPEN are never written.
    """

    def __init__(self, store, now: Callable[[], datetime] = utc_now):
        self.store = store
        self._now = now

    async def apply(self, position: Position, snapshot: MarketPriceSnapshot, valuation: Valuation) -> bool:
        """
        Returns True when the write landed.

        Raises:
            PersistenceError: the store rejected or failed the write
        """
        if not position.is_open:
            logger.warning(f"⚠️ Position {position.id} is {position.status.value}, valuation not written")
            return False

        fields = build_update(snapshot, valuation, self._now())
        try:
            await self.store.update_position(position.id, fields)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(position.id, str(e)) from e

        logger.debug(
            f"💾 {position.id} ({position.side.value} ${position.bet_amount:.2f}): "
            f"payout ${valuation.expected_payout:.2f}, uPnL ${valuation.unrealized_pnl:+.2f}"
        )
        return True
