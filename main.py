# main.py

"""Entry point for the price aggregator (scheduler or one-shot commands)."""

import argparse
import asyncio
import logging
import sys

from price_aggregator.config.logging_config import setup_logging
from price_aggregator.config.settings import Settings

logger = logging.getLogger("price_aggregator.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="price_aggregator",
        description=(
            "Periodically aggregate product listings and track "
            "price history."
        ),
        epilog=f"Configured sources: {valid_ids}",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single aggregation cycle and exit.",
    )
    mode.add_argument(
        "--catalog",
        action="store_true",
        default=False,
        help="Print the persisted catalog.",
    )
    mode.add_argument(
        "--history",
        type=int,
        default=None,
        metavar="ID",
        help="Print a product and its price history.",
    )
    mode.add_argument(
        "--changes",
        type=int,
        default=None,
        metavar="N",
        help="Print the N most recent price changes.",
    )
    mode.add_argument(
        "--set-price",
        nargs=2,
        default=None,
        metavar=("ID", "PRICE"),
        dest="set_price",
        help="Manually change one product's price.",
    )
    mode.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Probe every configured source once.",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=None,
        help=(
            "Scheduler interval in milliseconds "
            f"(default: {Settings.FETCH_INTERVAL_MS})."
        ),
    )
    parser.add_argument(
        "--now",
        action="store_true",
        default=False,
        dest="run_immediately",
        help="Run the first scheduled cycle immediately.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Also show INFO messages on the console.",
    )
    return parser


def _run_scheduler(args: argparse.Namespace) -> None:
    """Run the interval scheduler until interrupted."""
    from price_aggregator.cli.runner import run_scheduler

    try:
        asyncio.run(
            run_scheduler(
                interval_ms=args.interval,
                run_immediately=args.run_immediately,
            )
        )
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted, shutting down")
    except Exception:
        logger.critical("Fatal error in scheduler", exc_info=True)
        raise


def main() -> None:
    """Route to the scheduler (no mode flag) or a one-shot command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        logging.INFO if args.verbose else logging.WARNING
    )
    logger.info("price_aggregator starting, log file: %s", log_file)

    from price_aggregator.cli import runner

    if args.once:
        sys.exit(asyncio.run(runner.run_once()))
    elif args.catalog:
        sys.exit(runner.show_catalog())
    elif args.history is not None:
        sys.exit(runner.show_history(args.history))
    elif args.changes is not None:
        sys.exit(runner.show_changes(args.changes))
    elif args.set_price is not None:
        product_id, price = args.set_price
        try:
            pid = int(product_id)
        except ValueError:
            parser.error(f"invalid product id: {product_id}")
        sys.exit(runner.set_price(pid, price))
    elif args.health:
        sys.exit(asyncio.run(runner.run_health_check()))
    else:
        _run_scheduler(args)


if __name__ == "__main__":
    main()
