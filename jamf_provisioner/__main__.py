"""Allow ``python -m jamf_provisioner``."""

import sys

from jamf_provisioner.cli import main

if __name__ == "__main__":
    sys.exit(main())
