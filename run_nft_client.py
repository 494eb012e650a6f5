#!/usr/bin/env python3
"""Thin wrapper around the ``nft_client`` command line.

Parsing, configuration and the chain calls themselves live in the
``nft_client`` package; this script only forwards ``sys.argv``.
"""

from __future__ import annotations

import sys

from nft_client.cli import main


if __name__ == "__main__":
    sys.exit(main())
