import sys

from rmsimulator.cli import main

sys.exit(main())
