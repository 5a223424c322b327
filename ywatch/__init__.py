# ywatch/__init__.py

"""
ywatch - inotify-based file system watcher
Runs configured actions when watched directories change
"""
__version__ = "0.1.0"
