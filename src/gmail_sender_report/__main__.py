import sys

from gmail_sender_report.cli import main

sys.exit(main())
