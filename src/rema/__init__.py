"""rema - pull, build and clean a directory full of repositories."""

__version__ = "0.1.0"
