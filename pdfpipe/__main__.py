import sys

from pdfpipe.cli import main

sys.exit(main())
