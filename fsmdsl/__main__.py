import sys

from fsmdsl.cli import main

sys.exit(main())
