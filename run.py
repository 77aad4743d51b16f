"""
Run the approval engine sweeps.

Usage:
    python run.py            # Periodic timeout + reminder sweeps
    python run.py --once     # Single sweep, then exit
    python run.py --health   # Print database health and exit
"""
import argparse
import json
import signal
import threading

from approval_engine.main import build_engine, build_scheduler, health, shutdown
from approval_engine.utils.logger import setup_logging, get_logger


def main():
    parser = argparse.ArgumentParser(description="Run the approval engine sweep scheduler")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run the timeout and reminder sweeps once and exit"
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Print MongoDB health and exit"
    )
    parser.add_argument(
        "--skip-indexes",
        action="store_true",
        help="Do not create MongoDB indexes on startup"
    )

    args = parser.parse_args()

    setup_logging()
    logger = get_logger("run")

    if args.health:
        print(json.dumps(health(), indent=2))
        return

    engine = build_engine(ensure_indexes=not args.skip_indexes)
    scheduler = build_scheduler(engine)

    if args.once:
        result = scheduler.run_once()
        print(json.dumps(result, indent=2))
        shutdown()
        return

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    scheduler.start()
    logger.info("Sweep scheduler running, press Ctrl+C to stop")
    stop.wait()
    shutdown(scheduler)


if __name__ == "__main__":
    main()
