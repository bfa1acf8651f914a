"""Module entry point: ``python -m tartrunner``."""

import sys

from tartrunner import cli

if __name__ == "__main__":
    sys.exit(cli.main())
