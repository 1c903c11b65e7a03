import sys

from cqlmigrate.cli import main

sys.exit(main())
