"""
epoch_distributor/cli.py

Command-line entry points.

    epoch-distributor run       execute one epoch (exit 0 on success or a
                                gated stop, 1 on any failure)
    epoch-distributor monitor   serve the monitoring dashboard

All settings come from the environment (see epoch_distributor.config),
with a .env file in the working directory supplying any that are unset.
"""

import logging
import os
import sys

import click
import trio
from dotenv import find_dotenv, load_dotenv

from .config import get_monitor_port, get_summary_path, load_config
from .exceptions import DistributorError
from .monitor import MonitorAPI
from .protocol.epoch import EpochRunner
from .protocol.storage import SummaryStore

logger = logging.getLogger("epoch_distributor.cli")


def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL (default INFO)."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )


@click.group()
def main():
    """Creator fee claim and holder reward distribution."""
    # .env in the working directory fills in anything the environment lacks
    load_dotenv(find_dotenv(usecwd=True), override=False)
    configure_logging()


@main.command()
def run():
    """Run one distribution epoch."""
    try:
        config = load_config()
    except DistributorError as e:
        logger.error(f"Invalid configuration: {e.to_dict()}")
        sys.exit(1)

    logger.info(f"Loaded configuration: {config.describe()}")
    runner = EpochRunner.from_config(config)
    try:
        outcome = runner.run()
    except DistributorError:
        # Already logged with context by the runner
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Epoch run failed unexpectedly: {e}")
        sys.exit(1)
    finally:
        runner.close()

    logger.info(f"Epoch finished: {outcome.to_dict()}")


@main.command()
def monitor():
    """Serve the epoch monitoring dashboard."""
    try:
        port = get_monitor_port()
    except DistributorError as e:
        logger.error(f"Invalid configuration: {e.to_dict()}")
        sys.exit(1)

    api = MonitorAPI(SummaryStore(get_summary_path()), port=port)
    try:
        trio.run(api.start)
    except KeyboardInterrupt:
        logger.info("Monitoring UI stopped")


if __name__ == "__main__":
    main()
