"""Package entry point for ``python -m bible_converter``.

Delegates to the CLI's main() and exits with its return code. The
``plugin`` subcommand makes this module usable as an external plugin
executable: ``python -m bible_converter plugin format.txt``.
"""

import sys

from bible_converter.cli import main

if __name__ == "__main__":
    sys.exit(main())
