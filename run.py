#!/usr/bin/env python
"""
Run script for the notepad calculator.
This allows users to easily start the app without installing the package.
"""

import sys

from calc_pad.app import main

if __name__ == "__main__":
    sys.exit(main())
