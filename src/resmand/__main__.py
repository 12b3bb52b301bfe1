"""Allow ``python -m resmand`` to start the daemon."""

import sys

from resmand.cli import main

sys.exit(main())
