"""railscan: rule-driven static security scanner for web application code."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("railscan")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0-dev"

__all__ = ["__version__"]
