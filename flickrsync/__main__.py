"""main module"""

import sys

from flickrsync.cli import main


def run() -> None:
    """
    Console entry point.
    """
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n[!] Exiting...")
        sys.exit(0)


if __name__ == "__main__":
    run()
