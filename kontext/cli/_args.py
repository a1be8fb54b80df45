# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import List, Sequence
import os
import sys
import getpass
import logging
import argparse

import sentry_sdk
import structlog
import colorama

import kontext
from . import _cmd_diff, _cmd_extract, _cmd_publish, _cmd_version


def parse_args(argv: Sequence[str]) -> argparse.Namespace:

    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        help="Enable verbose output (can be specified more than once)",
        default=int(os.getenv("KONTEXT_VERBOSITY", 0)),
    )

    parser = argparse.ArgumentParser(
        prog=kontext.__name__, description=kontext.__doc__, parents=[parent_parser]
    )

    sub_parsers = parser.add_subparsers(
        dest="command", title="commands", metavar="COMMAND"
    )

    _cmd_publish.register(sub_parsers, parents=[parent_parser])
    _cmd_diff.register(sub_parsers, parents=[parent_parser])
    _cmd_extract.register(sub_parsers, parents=[parent_parser])
    _cmd_version.register(sub_parsers, parents=[parent_parser])

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help(sys.stderr)
        sys.exit(1)
    return args


def configure_sentry(config: kontext.Config = None) -> bool:
    """Initialize error reporting, if a dsn has been configured.

    Returns:
        bool: true if sentry was initialized
    """

    from sentry_sdk.integrations.logging import ignore_logger

    if config is None:
        config = kontext.get_config()
    if not config.sentry_dsn:
        return False

    sentry_sdk.init(
        config.sentry_dsn,
        environment=config.sentry_environment,
        release=kontext.__version__,
    )
    # errors are captured explicitly before being logged by the cli
    ignore_logger("kontext.cli")
    sentry_sdk.set_user({"username": getpass.getuser()})
    return True


def configure_logging(args: argparse.Namespace) -> None:

    colorama.init()

    level = logging.INFO
    processors: List = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
    ]

    logging.getLogger("urllib3").setLevel(logging.CRITICAL + 1)
    os.environ["KONTEXT_VERBOSITY"] = str(args.verbose)
    if args.verbose > 0:
        level = logging.DEBUG
        processors.extend(
            [
                structlog.stdlib.add_logger_name,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
            ]
        )
    if args.verbose > 1:
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    processors.append(structlog.dev.ConsoleRenderer())

    logging.basicConfig(stream=sys.stderr, format="%(message)s", level=level)
    structlog.configure_once(
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        processors=processors,
    )
