"""
nestcarve command line entry point.

Usage:
  python main.py firmware.bin --extract
"""

import sys

from nestcarve.cli import main

if __name__ == "__main__":
    sys.exit(main())
