# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

from typing import Any
import argparse

import structlog

import kontext
from . import _flags

_LOGGER = structlog.get_logger("kontext.cli")


def register(
    sub_parsers: argparse._SubParsersAction, **parser_args: Any
) -> argparse.ArgumentParser:

    diff_cmd = sub_parsers.add_parser("diff", help=_diff.__doc__, **parser_args)
    _flags.add_context_flags(diff_cmd)
    diff_cmd.set_defaults(func=_diff)
    return diff_cmd


def _diff(args: argparse.Namespace) -> None:
    """Show what would be published for a directory, without pushing anything."""

    config = kontext.get_config()
    directory = kontext.check_directory(args.directory)
    target = kontext.parse_target(args.tag)
    base = kontext.find_base_image(target, config.get_client(), config)
    diff = kontext.tracking.compute_diff(
        directory, base.manifest, compare_digests=args.rehash
    )
    out = kontext.io.format_changes(diff.iter_diffs(), config.mount_path)
    if not out.strip():
        _LOGGER.info("no changes")
    else:
        print(out)
