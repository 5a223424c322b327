# ywatch/cli.py

"""
Command line entry point
"""
import sys
import argparse
import logging
from typing import List, Optional

from . import __version__
from .exceptions import ConfigurationError
from .utils.config import LOG_FORMATS, load_config
from .utils.logger import setup_logging
from .watch.monitor import Monitor

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "/etc/ywatch/ywatch.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ywatch",
        description="Watch directories with inotify and run actions on changes",
    )
    parser.add_argument("config", nargs="?", default=DEFAULT_CONFIG,
                        help=f"configuration file (default: {DEFAULT_CONFIG})")
    parser.add_argument("-d", "--debug", action="store_true",
                        help="log at DEBUG level regardless of configuration")
    parser.add_argument("--validate", action="store_true",
                        help="check the configuration and exit")
    parser.add_argument("--log-format", choices=sorted(LOG_FORMATS),
                        help="override the configured log format")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, configure logging and run the monitor until shutdown"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        setup_logging("DEBUG" if args.debug else "INFO")
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_logging(
        log_level="DEBUG" if args.debug else config.logging.level,
        log_file=config.logging.file,
        log_format=args.log_format or config.logging.format,
    )

    if args.validate:
        watches = sum(len(watchlist.watches) for watchlist in config.enabled_watchlists())
        print(f"Configuration OK: {len(config.enabled_watchlists())} enabled watchlist(s), "
              f"{watches} watch(es)")
        return 0

    logger.info(f"Starting {config.name} with {args.config}")
    monitor = Monitor(args.config, config=config)

    try:
        monitor.run()
    except ConfigurationError as e:
        logger.error(f"Cannot start monitoring: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")

    return 0


if __name__ == "__main__":
    sys.exit(main())
