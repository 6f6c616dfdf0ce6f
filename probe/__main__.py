"""Run the probe server: python -m probe [config.json]"""

import sys

from probe.server import main

if __name__ == "__main__":
    sys.exit(main())
