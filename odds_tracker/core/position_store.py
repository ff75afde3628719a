"""
Position Store
==============

Async access to the `agent_predictions` table that holds every simulated
position. Positions need two operations:

- list_open_positions()            -> List[Position]
- update_position(id, fields)      -> None, raises PersistenceError

and `agent_balances` two more, used to roll unrealized P&L into each
agent's current balance:

- get_agent_balance(agent_id)      -> row dict or None
- update_agent_balance(agent_id, fields) -> None, raises BalanceError

Writes are independent partial updates keyed by id (last write wins).
"""

import asyncio
import logging
from typing import Dict, List, Optional

from supabase import create_client, Client

from odds_tracker.core.config import Config
from odds_tracker.core.errors import BalanceError, PersistenceError
from odds_tracker.revaluation.models import Position

logger = logging.getLogger(__name__)


class PositionStore:
    """Interface of a position store; see SupabasePositionStore"""

    async def list_open_positions(self) -> List[Position]:
        raise NotImplementedError

    async def update_position(self, position_id: str, fields: Dict) -> None:
        raise NotImplementedError

    async def get_agent_balance(self, agent_id: str) -> Optional[Dict]:
        raise NotImplementedError

    async def update_agent_balance(self, agent_id: str, fields: Dict) -> None:
        raise NotImplementedError


class SupabasePositionStore(PositionStore):
    """
    Supabase (Postgres) backed store.

    The supabase client is synchronous, so every call is pushed onto the
    default executor to keep the event loop free while a cycle is running.
    """

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        table: Optional[str] = None,
        client: Optional[Client] = None,
        balances_table: Optional[str] = None,
    ):
        config = Config()
        self.table = table or config.POSITIONS_TABLE
        self.balances_table = balances_table or config.BALANCES_TABLE

        if client is not None:
            self.client = client
            return

        supabase_url = supabase_url or config.SUPABASE_URL
        supabase_key = supabase_key or config.SUPABASE_KEY
        if not all([supabase_url, supabase_key]):
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set to use the position store")

        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"🗄️ Position store connected (table={self.table})")

    async def list_open_positions(self) -> List[Position]:
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None,
            lambda: self.client.table(self.table)
            .select("*")
            .eq("position_status", "OPEN")
            .eq("resolved", False)
            .execute(),
        )

        positions: List[Position] = []
        for row in response.data or []:
            try:
                position = Position.from_row(row)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"⚠️ Skipping malformed position row {row.get('id')}: {e}")
                continue
            if position.is_open:
                positions.append(position)
        return positions

    async def update_position(self, position_id: str, fields: Dict) -> None:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.table(self.table)
                .update(fields)
                .eq("id", position_id)
                .eq("position_status", "OPEN")
                .execute(),
            )
        except Exception as e:
            raise PersistenceError(position_id, f"update failed: {e}") from e

        if not response.data:
            # Row vanished or was resolved between the read and this write
            raise PersistenceError(position_id, "no open row matched")

    async def get_agent_balance(self, agent_id: str) -> Optional[Dict]:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.table(self.balances_table)
                .select("*")
                .eq("agent_id", agent_id)
                .limit(1)
                .execute(),
            )
        except Exception as e:
            raise BalanceError(agent_id, f"balance lookup failed: {e}") from e

        rows = response.data or []
        return rows[0] if rows else None

    async def update_agent_balance(self, agent_id: str, fields: Dict) -> None:
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                None,
                lambda: self.client.table(self.balances_table)
                .update(fields)
                .eq("agent_id", agent_id)
                .execute(),
            )
        except Exception as e:
            raise BalanceError(agent_id, f"balance update failed: {e}") from e

        if not response.data:
            raise BalanceError(agent_id, "no balance row matched")
