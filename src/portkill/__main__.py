"""Entry point for portkill."""

import logging
import sys
from collections.abc import Sequence

from portkill.cli import apply_overrides, parse_args
from portkill.config import load_or_create
from portkill.errors import ConfigError
from portkill.log import setup_logging

logger = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the portkill command."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, use_textual=not args.console)

    try:
        config = apply_overrides(load_or_create(args.config), args)
    except ConfigError as e:
        print(f"portkill: {e}", file=sys.stderr)
        return 2

    if config.app.verbose_logging:
        logging.getLogger().setLevel(logging.DEBUG)
    logger.info("Starting portkill, monitoring %s", config.describe())

    if args.console:
        from portkill.console import ConsoleApp

        ConsoleApp(config).run()
    else:
        from portkill.app import PortKillApp

        PortKillApp(config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
