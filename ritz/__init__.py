"""Read-only web front end for git repositories."""

__version__ = "0.1.0"
