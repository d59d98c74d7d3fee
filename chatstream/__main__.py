import sys

from chatstream.cli import main

sys.exit(main())
