#!/usr/bin/env python3
"""
Entry point for running mononoke_harness as a module.
This file enables: python -m mononoke_harness
"""

import sys

from .main import main

if __name__ == '__main__':
    sys.exit(main())
