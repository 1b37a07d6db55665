import sys

from dicewager.cli import main

sys.exit(main())
