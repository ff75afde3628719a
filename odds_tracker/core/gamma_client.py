import asyncio
import aiohttp
import logging
import random
from typing import Optional

from odds_tracker.core.config import Config
from odds_tracker.core.errors import PermanentFetchError, TransientFetchError
from odds_tracker.core.rate_limiter import PacingLimiter

logger = logging.getLogger(__name__)


class GammaClient:
    """
    Client for Polymarket's Gamma API (Query Layer).
    Used by the tracker to read the live odds of one market at a time.
    Endpoint: https://gamma-api.polymarket.com/markets/{market_id}

    Failure policy:
    - 429, 5xx, timeouts and connection errors are transient and retried
      with capped exponential backoff plus jitter.
    - Any other non-200 status, or a body that is not a JSON object, is
      permanent and raised immediately.
    """
    HEADERS = {
        "Accept": "application/json",
        "User-Agent": "odds-tracker/1.0",
    }

    def __init__(
        self,
        base_url: Optional[str] = None,
        limiter: Optional[PacingLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep=asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        config = Config()
        self.base_url = (base_url or config.GAMMA_API_URL).rstrip("/")
        self.limiter = limiter or PacingLimiter(config.FETCH_MIN_INTERVAL_SECONDS)
        self.max_attempts = max(1, max_attempts or config.FETCH_MAX_ATTEMPTS)
        self.backoff_base = config.FETCH_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self.backoff_max = config.FETCH_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max
        self.timeout = timeout or config.FETCH_TIMEOUT_SECONDS
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._session = session
        self._owns_session = session is None

        self.request_count = 0

    async def fetch_market(self, market_id: str) -> dict:
        """
        Fetch the raw Gamma payload for one market, retrying transient failures.

        Raises:
            PermanentFetchError: 4xx, unknown market, undecodable body
            TransientFetchError: retries exhausted
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._request_market(market_id, attempt)
            except TransientFetchError as e:
                if attempt >= self.max_attempts:
                    raise TransientFetchError(
                        market_id,
                        f"gave up after {attempt} attempts ({e})",
                        status=e.status,
                        attempts=attempt,
                    ) from e
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"⚠️ Gamma fetch failed for {market_id} (attempt {attempt}/{self.max_attempts}): "
                    f"{e}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        # max_attempts >= 1, the loop always returns or raises
        raise AssertionError("unreachable")

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay after the given failed attempt: base * 2^(attempt-1), plus up
        to 10% jitter, never above backoff_max.
        """
        delay = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = self._rng.uniform(0, delay * 0.1)
        return min(delay + jitter, self.backoff_max)

    async def _request_market(self, market_id: str, attempt: int) -> dict:
        await self.limiter.acquire("markets")
        self.request_count += 1

        url = f"{self.base_url}/markets/{market_id}"
        session = await self._ensure_session()
        try:
            async with session.get(
                url,
                headers=self.HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status == 200:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as e:
                        raise PermanentFetchError(
                            market_id, f"invalid JSON body: {e}", status=200, attempts=attempt
                        ) from e
                    if not isinstance(data, dict):
                        raise PermanentFetchError(
                            market_id,
                            f"expected a JSON object, got {type(data).__name__}",
                            status=200,
                            attempts=attempt,
                        )
                    return data

                if resp.status == 429 or resp.status >= 500:
                    raise TransientFetchError(
                        market_id, f"HTTP {resp.status}", status=resp.status, attempts=attempt
                    )
                raise PermanentFetchError(
                    market_id, f"HTTP {resp.status}", status=resp.status, attempts=attempt
                )
        except asyncio.TimeoutError as e:
            raise TransientFetchError(
                market_id, f"timeout after {self.timeout}s", attempts=attempt
            ) from e
        except aiohttp.ClientError as e:
            raise TransientFetchError(
                market_id, f"network error: {e}", attempts=attempt
            ) from e

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            logger.info("✅ GammaClient session closed")
