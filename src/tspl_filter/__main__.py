"""``python -m tspl_filter job-id user title copies options [file]``"""

import sys

from tspl_filter.filter import main

if __name__ == "__main__":
    sys.exit(main())
