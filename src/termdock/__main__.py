"""``python -m termdock``: run the session inspection CLI."""

import sys

from termdock.cli import run

if __name__ == "__main__":
    raise SystemExit(run(sys.argv[1:]))
