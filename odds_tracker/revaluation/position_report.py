import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from odds_tracker.revaluation.models import Position

logger = logging.getLogger(__name__)


@dataclass
class AgentExposure:
    count: int = 0
    unrealized: float = 0.0
    total_bet: float = 0.0


@dataclass
class PositionReport:
    total_open_positions: int = 0
    total_unrealized_pnl: float = 0.0
    positions_by_agent: Dict[str, AgentExposure] = field(default_factory=dict)
    oldest_position: Optional[dict] = None

    def top_agents(self, n: int = 3) -> List[tuple]:
        return sorted(
            self.positions_by_agent.items(),
            key=lambda item: item[1].unrealized,
            reverse=True,
        )[:n]

    def to_dict(self) -> dict:
        return {
            "totalOpenPositions": self.total_open_positions,
            "totalUnrealizedPnl": self.total_unrealized_pnl,
            "positionsByAgent": {
                name: {"count": s.count, "unrealized": s.unrealized, "totalBet": s.total_bet}
                for name, s in self.positions_by_agent.items()
            },
            "oldestPosition": self.oldest_position,
        }


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _parse_created_at(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return _as_naive_utc(datetime.fromisoformat(ts))
    except (AttributeError, ValueError):
        return None


def build_position_report(positions: Iterable[Position], now: Optional[datetime] = None) -> PositionReport:
    """
    Aggregate open positions per agent. Positions never revalued count
    as zero unrealized P&L.
    """
    report = PositionReport()
    oldest: Optional[Position] = None
    oldest_at: Optional[datetime] = None

    for pos in positions:
        if not pos.is_open:
            continue
        unrealized = pos.unrealized_pnl or 0.0
        report.total_open_positions += 1
        report.total_unrealized_pnl += unrealized

        agent = pos.agent_name or pos.agent_id or "unknown"
        stats = report.positions_by_agent.setdefault(agent, AgentExposure())
        stats.count += 1
        stats.unrealized += unrealized
        stats.total_bet += pos.bet_amount

        created = _parse_created_at(pos.created_at)
        if created is None:
            continue
        if oldest_at is None or created < oldest_at:
            oldest, oldest_at = pos, created

    if oldest is not None:
        # Naive timestamps are taken to be UTC
        now = _as_naive_utc(now) if now else datetime.now(timezone.utc).replace(tzinfo=None)
        report.oldest_position = {
            "age_hours": (now - oldest_at).total_seconds() / 3600,
            "agent": oldest.agent_name or oldest.agent_id,
            "market": oldest.market_question[:50],
        }
    return report


def log_position_report(report: PositionReport):
    if report.total_open_positions == 0:
        return
    avg = report.total_unrealized_pnl / report.total_open_positions
    logger.info(
        f"💰 Position Stats: {report.total_open_positions} open positions, "
        f"Total Unrealized P&L: ${report.total_unrealized_pnl:.2f}, Avg: ${avg:.2f}"
    )
    top = report.top_agents(3)
    if top:
        logger.info("🏆 Top Unrealized P&L: " + ", ".join(
            f"{name}: ${s.unrealized:.2f} ({s.count} pos)" for name, s in top
        ))
