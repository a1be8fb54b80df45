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

    publish_cmd = sub_parsers.add_parser(
        "publish", help=_publish.__doc__, **parser_args
    )
    _flags.add_context_flags(publish_cmd)
    publish_cmd.set_defaults(func=_publish)
    return publish_cmd


def _publish(args: argparse.Namespace) -> None:
    """Publish a local directory as an image, uploading only what changed."""

    target = kontext.parse_target(args.tag)
    image = kontext.publish_context(
        args.directory, args.tag, compare_digests=args.rehash
    )
    print(target.with_digest(image.digest()))
    _LOGGER.info("done")
