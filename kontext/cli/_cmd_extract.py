# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any
import argparse

import structlog

import kontext

_LOGGER = structlog.get_logger("kontext.cli")


def register(
    sub_parsers: argparse._SubParsersAction, **parser_args: Any
) -> argparse.ArgumentParser:

    extract_cmd = sub_parsers.add_parser(
        "extract", help=_extract.__doc__, **parser_args
    )
    extract_cmd.add_argument(
        "--source",
        metavar="DIR",
        help="The directory where the context was mounted (defaults to the configured mount path)",
    )
    extract_cmd.add_argument(
        "--target",
        metavar="DIR",
        help="The directory to copy the context into (defaults to the configured workspace)",
    )
    extract_cmd.set_defaults(func=_extract)
    return extract_cmd


def _extract(args: argparse.Namespace) -> None:
    """Copy a published context from its mount path into the workspace."""

    config = kontext.get_config()
    source = args.source or config.mount_path
    target = args.target or config.workspace
    count = kontext.extract_context(source, target)
    _LOGGER.info("done", files=count)
