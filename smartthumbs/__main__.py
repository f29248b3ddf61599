"""
Main entry point for running the package as a module.

Usage:
    python -m smartthumbs resolve images/cat.jpg -p avatar -c thumbnails.yaml
    python -m smartthumbs stats
    python -m smartthumbs purge avatar --yes
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
