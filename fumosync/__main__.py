"""Entry point for fumosync.

Usage:
    python -m fumosync <command> [options]
    fumo <command> [options]
"""

import sys


def main() -> None:
    """Run the command line and exit with its status."""
    from fumosync.cli import main as cli_main

    sys.exit(cli_main())


if __name__ == "__main__":
    main()
