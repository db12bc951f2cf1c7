import sys

from cargo_verify.cli import main

sys.exit(main())
