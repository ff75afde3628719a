"""
Agent Balance Revaluation
=========================

After a cycle's positions are revalued, each agent's unrealized P&L is
summed and rolled into its balance row:

    current_balance = initial_balance - total_wagered + total_winnings + unrealized

Stakes still riding on open positions are out of the balance until they
resolve; the unrealized term marks them to market. Each agent is updated
independently, so one missing or failing balance row never blocks another.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Tuple

from odds_tracker.core.errors import BalanceError
from odds_tracker.revaluation.models import utc_now

logger = logging.getLogger(__name__)


@dataclass
class AgentBalance:
    agent_id: str
    agent_name: str
    initial_balance: float
    total_wagered: float
    total_winnings: float
    current_balance: float

    @classmethod
    def from_row(cls, row: Dict) -> "AgentBalance":
        return cls(
            agent_id=str(row["agent_id"]),
            agent_name=str(row.get("agent_name") or row["agent_id"]),
            initial_balance=float(row.get("initial_balance") or 0),
            total_wagered=float(row.get("total_wagered") or 0),
            total_winnings=float(row.get("total_winnings") or 0),
            current_balance=float(row.get("current_balance") or 0),
        )

    def marked_to_market(self, unrealized_pnl: float) -> float:
        return self.initial_balance - self.total_wagered + self.total_winnings + unrealized_pnl


def sum_unrealized_by_agent(valuations: Iterable[Tuple[str, float]]) -> Dict[str, float]:
    """(agent_id, unrealized_pnl) pairs -> total per agent; blank agent ids are ignored"""
    totals: Dict[str, float] = {}
    for agent_id, pnl in valuations:
        if not agent_id:
            continue
        totals[agent_id] = totals.get(agent_id, 0.0) + pnl
    return totals


class BalanceUpdater:
    def __init__(self, store, now: Callable[[], datetime] = utc_now):
        self.store = store
        self._now = now

    async def apply(self, unrealized_by_agent: Dict[str, float]) -> Tuple[int, int]:
        """
        Revalue every agent concurrently.

        Returns:
            (updated, failed). Agents without a balance row count as neither.
        """
        if not unrealized_by_agent:
            return 0, 0

        logger.info(f"💰 [Balance Update] Updating balances for {len(unrealized_by_agent)} agents...")
        results = await asyncio.gather(*(
            self._apply_one(agent_id, pnl) for agent_id, pnl in unrealized_by_agent.items()
        ))
        updated = sum(1 for r in results if r is True)
        failed = sum(1 for r in results if r is False)
        logger.info(f"✅ [Balance Update] Updated {updated}/{len(unrealized_by_agent)} agent balances")
        return updated, failed

    async def _apply_one(self, agent_id: str, unrealized_pnl: float) -> Optional[bool]:
        try:
            row = await self.store.get_agent_balance(agent_id)
            if row is None:
                logger.warning(f"⚠️ No balance found for agent {agent_id}")
                return None
            balance = AgentBalance.from_row(row)
            new_balance = balance.marked_to_market(unrealized_pnl)
            await self.store.update_agent_balance(agent_id, {
                "current_balance": new_balance,
                "last_updated": self._now().isoformat(),
            })
        except BalanceError as e:
            logger.error(f"❌ Failed to update balance: {e}")
            return False
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"❌ Malformed balance row for agent {agent_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ Failed to update balance for agent {agent_id}: {e}", exc_info=True)
            return False

        change = new_balance - balance.current_balance
        if abs(change) > 0.01:
            logger.info(
                f"💰 {balance.agent_name}: {balance.current_balance:.2f} → {new_balance:.2f} ({change:+.2f})"
            )
        return True
