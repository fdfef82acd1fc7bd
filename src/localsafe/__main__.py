# LocalSafe: Main Entry Point
#
# `python -m localsafe <command>` runs one command and exits.
# With no command the interactive shell starts.

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
