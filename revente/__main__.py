import sys

from revente.ui.cli import main

sys.exit(main())
