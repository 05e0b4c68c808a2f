"""
Feature definition backend implementations.
"""

from .cached import CachedFeatureBackend
from .configuration import ConfigurationFeatureBackend
from .database import DatabaseFeatureBackend
from .memory import MemoryFeatureBackend

__all__ = [
    "CachedFeatureBackend",
    "ConfigurationFeatureBackend",
    "DatabaseFeatureBackend",
    "MemoryFeatureBackend",
]
