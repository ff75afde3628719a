import asyncio
import json
import logging
import signal
from dotenv import load_dotenv

# Load Environment Variables
load_dotenv()

from odds_tracker.core.config import Config
from odds_tracker.core.gamma_client import GammaClient
from odds_tracker.core.position_store import SupabasePositionStore
from odds_tracker.core.rate_limiter import PacingLimiter
from odds_tracker.core.status_reporter import StatusReporter, load_status_file
from odds_tracker.core.structured_logger import setup_logging
from odds_tracker.dashboard.monitor import print_status, run_monitor
from odds_tracker.revaluation.tracker import OddsTracker

logger = logging.getLogger("OddsTrackerRunner")


def build_tracker(config: Config) -> OddsTracker:
    store = SupabasePositionStore()
    gamma = GammaClient(limiter=PacingLimiter(config.FETCH_MIN_INTERVAL_SECONDS))
    reporter = StatusReporter(filepath=config.TRACKER_STATUS_FILE)
    return OddsTracker(store, gamma=gamma, reporter=reporter)


async def run_forever(tracker: OddsTracker, interval: float = None):
    loop = asyncio.get_running_loop()
    stopped = asyncio.Event()

    def _handle_signal():
        logger.info("🛑 Shutdown signal received...")
        stopped.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_signal)
        except NotImplementedError:
            pass

    await tracker.start(interval)
    try:
        await stopped.wait()
    finally:
        await tracker.close()
        logger.info("👋 Odds tracker shut down")


async def run_once(tracker: OddsTracker) -> dict:
    try:
        await tracker.force_update()
        return tracker.status()
    finally:
        await tracker.close()


def main(args):
    config = Config()
    level = getattr(logging, config.LOG_LEVEL, logging.INFO)
    setup_logging(level=level, json_output=args.json_logs or config.JSON_LOGS, log_file=config.LOG_FILE)

    if args.command == "status":
        if args.watch:
            run_monitor(config.TRACKER_STATUS_FILE)
        else:
            print_status(load_status_file(config.TRACKER_STATUS_FILE))
        return

    tracker = build_tracker(config)
    if args.command == "once":
        print(json.dumps(asyncio.run(run_once(tracker)), indent=2))
    else:
        asyncio.run(run_forever(tracker, args.interval))


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Market odds revaluation tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Start the periodic tracker and serve until interrupted")
    run_parser.add_argument("--interval", type=float, default=None, help="Seconds between cycles")

    sub.add_parser("once", help="Run a single forced cycle and print its stats")

    status_parser = sub.add_parser("status", help="Show the last published tracker status")
    status_parser.add_argument("--watch", action="store_true", help="Live-refreshing dashboard")

    parser.add_argument("--json-logs", action="store_true", help="Enable JSON logging output")
    args = parser.parse_args()

    try:
        main(args)
    except KeyboardInterrupt:
        pass
