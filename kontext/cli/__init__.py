# Copyright (c) 2021 Sony Pictures Imageworks, et al.
# SPDX-License-Identifier: Apache-2.0
# https://github.com/imageworks/spk

"""The kontext command line interface."""

from ._args import parse_args, configure_logging, configure_sentry
from ._run import main, run

__all__ = list(locals().keys())
