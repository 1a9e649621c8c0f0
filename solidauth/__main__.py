"""Allow running solidauth as ``python -m solidauth``."""

import sys

from .cli import main


sys.exit(main())
