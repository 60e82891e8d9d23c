"""Entry point for jikanicle when run as a module.

This allows the package to be run with: python -m jikanicle
"""

import sys

from jikanicle.cli import main

if __name__ == "__main__":
    sys.exit(main())
