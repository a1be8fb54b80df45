# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Sequence
import sys
import traceback

import sentry_sdk
import structlog
from colorama import Fore

import kontext

from ._args import parse_args, configure_logging, configure_sentry

_LOGGER = structlog.get_logger("kontext.cli")


def main() -> None:

    code = run(sys.argv[1:])
    sentry_sdk.flush()
    sys.exit(code)


def run(argv: Sequence[str]) -> int:

    try:
        args = parse_args(argv)
    except SystemExit as e:
        return _exit_code(e)

    configure_logging(args)

    try:
        configure_sentry()
    except Exception as e:
        print(f"failed to initialize sentry: {e}", file=sys.stderr)

    sentry_sdk.set_extra("command", args.command)
    sentry_sdk.set_extra("argv", sys.argv)

    try:
        sys.stdout.reconfigure(encoding="utf-8")  # type: ignore
    except AttributeError:
        # stdio might not be a real terminal, but that's okay
        pass

    try:
        args.func(args)

    except KeyboardInterrupt:
        pass

    except SystemExit as e:
        return _exit_code(e)

    except kontext.NothingToPublishError as e:
        _LOGGER.info(str(e))

    except Exception as e:
        _capture_if_relevant(e)
        print(f"{kontext.io.format_error(e)}", file=sys.stderr)
        if args.verbose > 2:
            print(f"{Fore.RED}{traceback.format_exc()}{Fore.RESET}", file=sys.stderr)
        return 1

    return 0


def _exit_code(err: SystemExit) -> int:

    if err.code is None:
        return 0
    if isinstance(err.code, int):
        return err.code
    return 1


def _capture_if_relevant(err: Exception) -> None:

    if isinstance(err, kontext.UsageError):
        return
    if isinstance(err, kontext.registry.RegistryError):
        return
    if isinstance(err, OSError):
        return
    sentry_sdk.capture_exception(err)
