#main.py

"""
ywatch - inotify-based file system watcher
"""
import sys

from ywatch.cli import main

if __name__ == "__main__":
    sys.exit(main())
