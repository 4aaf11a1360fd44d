"""Core package for the job-application autofill pipeline."""

from importlib import metadata

try:
    __version__ = metadata.version("job-autofill")
except metadata.PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]
