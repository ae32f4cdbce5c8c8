"""
Main entry point for Face Overlay Tool

Provides command-line access to the face overlay pipeline.
"""

import sys
from .ui.cli import main

if __name__ == '__main__':
    sys.exit(main())
