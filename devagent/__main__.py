import sys

from devagent.interfaces.cli import main

sys.exit(main())
