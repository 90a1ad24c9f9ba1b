import sys

from hikemeet.server import main

sys.exit(main())
