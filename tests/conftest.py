import asyncio
import random
import sys
from pathlib import Path

import pytest

project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from odds_tracker.core.errors import BalanceError
from odds_tracker.core.gamma_client import GammaClient
from odds_tracker.core.rate_limiter import PacingLimiter
from odds_tracker.revaluation.models import Odds, Position, PositionStatus, Side


def make_position(
    pid,
    market_id,
    side=Side.YES,
    bet_amount=100.0,
    entry=(0.5, 0.5),
    status=PositionStatus.OPEN,
    agent_name="Agent A",
    created_at=None,
):
    return Position(
        id=pid,
        market_id=market_id,
        side=side,
        bet_amount=bet_amount,
        entry_odds=Odds(*entry),
        status=status,
        agent_id=agent_name.lower().replace(" ", "-"),
        agent_name=agent_name,
        market_question=f"Question for {market_id}",
        created_at=created_at,
    )


class InMemoryPositionStore:
    """Position store double: records writes, can fail selected ids or the initial load"""

    def __init__(self, positions=(), fail_ids=(), load_error=None, gate=None, balances=None, fail_agents=()):
        self.positions = list(positions)
        self.fail_ids = set(fail_ids)
        self.load_error = load_error
        self.gate = gate
        self.updates = []
        self.list_calls = 0
        self.balances = {row["agent_id"]: dict(row) for row in (balances or [])}
        self.fail_agents = set(fail_agents)
        self.balance_updates = []

    async def list_open_positions(self):
        self.list_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.load_error is not None:
            raise self.load_error
        return list(self.positions)

    async def update_position(self, position_id, fields):
        if position_id in self.fail_ids:
            raise RuntimeError("write timed out")
        self.updates.append((position_id, fields))

    def updated_ids(self):
        return [pid for pid, _ in self.updates]

    async def get_agent_balance(self, agent_id):
        row = self.balances.get(agent_id)
        return dict(row) if row is not None else None

    async def update_agent_balance(self, agent_id, fields):
        if agent_id in self.fail_agents:
            raise BalanceError(agent_id, "balance update failed: write timed out")
        self.balances[agent_id].update(fields)
        self.balance_updates.append((agent_id, fields))


def balance_row(agent_id, initial=1000.0, wagered=0.0, winnings=0.0, current=None, name=None):
    return {
        "agent_id": agent_id,
        "agent_name": name or agent_id,
        "initial_balance": initial,
        "total_wagered": wagered,
        "total_winnings": winnings,
        "current_balance": initial - wagered + winnings if current is None else current,
    }


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body

    async def json(self, content_type=None):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _Raising:
    def __init__(self, error):
        self.error = error

    async def __aenter__(self):
        raise self.error

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    aiohttp.ClientSession double keyed by market id.

    routes[market_id] is a list of outcomes (FakeResponse or exception)
    consumed in order; the last one repeats. Unrouted markets get `default`.
    """

    def __init__(self, routes=None, default=None):
        self.routes = {k: list(v) for k, v in (routes or {}).items()}
        self.default = default
        self.calls = []
        self.closed = False

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        market_id = url.rsplit("/", 1)[-1]
        outcomes = self.routes.get(market_id)
        if outcomes:
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        elif self.default is not None:
            outcome = self.default(market_id) if callable(self.default) else self.default
        else:
            outcome = FakeResponse(404, {"error": "not found"})
        if isinstance(outcome, Exception):
            return _Raising(outcome)
        return outcome

    def market_calls(self):
        return [url.rsplit("/", 1)[-1] for url in self.calls]

    async def close(self):
        self.closed = True


class RecordingSleep:
    """Returns immediately (after yielding once) and records requested delays"""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


class ManualSleep:
    """Blocks every sleeper until release() is called"""

    def __init__(self):
        self.delays = []
        self._waiters = []

    async def __call__(self, delay):
        self.delays.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        await fut

    def release(self):
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)


async def settle(rounds: int = 50):
    """Let every ready task run until the loop goes quiet"""
    for _ in range(rounds):
        await asyncio.sleep(0)


def outcome_prices(yes, no):
    return FakeResponse(200, {"outcomePrices": f'["{yes}", "{no}"]'})


def make_gamma(session, sleep=None, max_attempts=5):
    return GammaClient(
        base_url="https://gamma.test",
        limiter=PacingLimiter(0),
        session=session,
        max_attempts=max_attempts,
        backoff_base=1.0,
        backoff_max=10.0,
        timeout=5,
        sleep=sleep or RecordingSleep(),
        rng=random.Random(7),
    )


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
