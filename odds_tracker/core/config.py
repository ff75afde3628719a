import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


class Config:
    """
    Read-through view of the tracker's environment.
    Every property re-reads os.environ, so tests can monkeypatch values.
    """

    @property
    def GAMMA_API_URL(self) -> str:
        return os.getenv("GAMMA_API_URL", "https://gamma-api.polymarket.com").rstrip("/")

    @property
    def TRACKER_INTERVAL_SECONDS(self) -> float:
        return float(os.getenv("TRACKER_INTERVAL_SECONDS", "5"))

    @property
    def FETCH_MAX_ATTEMPTS(self) -> int:
        return int(os.getenv("FETCH_MAX_ATTEMPTS", "5"))

    @property
    def FETCH_BACKOFF_BASE_SECONDS(self) -> float:
        """Delay before the first retry; doubles on each further attempt"""
        return float(os.getenv("FETCH_BACKOFF_BASE_SECONDS", "1.0"))

    @property
    def FETCH_BACKOFF_MAX_SECONDS(self) -> float:
        return float(os.getenv("FETCH_BACKOFF_MAX_SECONDS", "10.0"))

    @property
    def FETCH_MIN_INTERVAL_SECONDS(self) -> float:
        """Minimum spacing between two outbound price requests"""
        return float(os.getenv("FETCH_MIN_INTERVAL_SECONDS", "0.1"))

    @property
    def FETCH_TIMEOUT_SECONDS(self) -> float:
        return float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))

    @property
    def FETCH_CONCURRENCY(self) -> int:
        # Upper bound on market fetches in flight within one cycle
        return max(1, int(os.getenv("FETCH_CONCURRENCY", "4")))

    @property
    def SUPABASE_URL(self):
        return os.getenv("SUPABASE_URL")

    @property
    def SUPABASE_KEY(self):
        return os.getenv("SUPABASE_KEY")

    @property
    def POSITIONS_TABLE(self) -> str:
        return os.getenv("POSITIONS_TABLE", "agent_predictions")

    @property
    def BALANCES_TABLE(self) -> str:
        return os.getenv("BALANCES_TABLE", "agent_balances")

    @property
    def REVALUE_AGENT_BALANCES(self) -> bool:
        """Roll each cycle's unrealized P&L into agent_balances.current_balance"""
        return _env_bool("REVALUE_AGENT_BALANCES", "true")

    @property
    def TRACKER_STATUS_FILE(self) -> str:
        return os.getenv("TRACKER_STATUS_FILE", "data/tracker_state.json")

    @property
    def LOG_LEVEL(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def JSON_LOGS(self) -> bool:
        return _env_bool("JSON_LOGS", "false")

    @property
    def LOG_FILE(self):
        """JSON log file path; set to an empty string to disable file logging"""
        value = os.getenv("LOG_FILE", "logs/tracker.log")
        return value or None
