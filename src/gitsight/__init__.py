"""GitSight - turn git history into queryable tables."""

from ._version import __version__

__all__ = ["__version__"]
