import sys

from inosense.cli import main


sys.exit(main())
