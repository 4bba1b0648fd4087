"""
Entry Point Script (Bootstrap)
==============================
Runs the command line tool from a source checkout without installing it.

Why is this file needed?
------------------------
It sits outside the 'src' package and puts 'src' on 'sys.path', so imports
like 'from meshmirror.model...' resolve when the package is not installed.

Usage:
    $ python run.py half.h5 full.h5 --copy-mirror-merge x
"""
import os
import sys

current_dir: str = os.path.dirname(os.path.abspath(__file__))
src_path: str = os.path.join(current_dir, 'src')
sys.path.insert(0, src_path)

from meshmirror.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
