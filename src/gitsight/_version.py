"""Version information for GitSight."""

__version__ = "0.1.0"
