import sys

from bansync.main import main

sys.exit(main())
