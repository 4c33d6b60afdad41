import sys

from vramtherm.cli import main

sys.exit(main())
