"""Allow ``python -m trackr``."""

import sys

from trackr.cli import main

sys.exit(main())
