import sys

from bookstore.cli import main

sys.exit(main())
