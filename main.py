"""
Entrypoint: read URLs from stdin and fetch them, see `fff --help`.
"""

import sys

from fff.main import main


if __name__ == "__main__":
    sys.exit(main())
