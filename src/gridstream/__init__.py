"""GridStream - paginated, cancellable views over streamed query results."""

from gridstream.__about__ import __version__

__all__ = ["__version__"]
