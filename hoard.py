#!/usr/bin/env python3
"""Thin loader delegating CLI/TUI logic to the interface layer."""

import sys

from interface import hoard_app as _hoard_app

if __name__ == "__main__":
    sys.exit(_hoard_app.main())
