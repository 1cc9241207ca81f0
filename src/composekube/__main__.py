"""Entry point for python -m composekube."""

import sys

from composekube.cli import main

if __name__ == "__main__":
    sys.exit(main())
