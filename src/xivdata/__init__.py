"""
xivdata - Batch builder for the item search data artifacts.
"""

from .config import BuildSettings, DataRepoNotFoundError, load_settings
from .pipeline import BuildPipeline, BuildSummary

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("xivdata")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable
__all__ = ["BuildPipeline", "BuildSettings", "BuildSummary", "DataRepoNotFoundError", "load_settings"]
