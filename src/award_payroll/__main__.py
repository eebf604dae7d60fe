"""Entry point for ``python -m award_payroll``."""

import sys

from award_payroll.cli import main

if __name__ == "__main__":
    sys.exit(main())
