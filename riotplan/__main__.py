"""Allow running as python -m riotplan."""

import sys

from riotplan.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
