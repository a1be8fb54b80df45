# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

import os
import argparse


def add_context_flags(parser: argparse.ArgumentParser) -> None:

    parser.add_argument(
        "--directory",
        "-d",
        metavar="DIR",
        default=os.getenv("KONTEXT_DIRECTORY", ""),
        help="The directory holding the build context",
    )
    parser.add_argument(
        "--tag",
        "-t",
        metavar="REF",
        default=os.getenv("KONTEXT_TAG", ""),
        help="The image reference to publish the context under",
    )
    parser.add_argument(
        "--no-rehash",
        action="store_false",
        dest="rehash",
        default=True,
        help=(
            "Only detect added and removed files, assuming that any file "
            "already published is unchanged"
        ),
    )
