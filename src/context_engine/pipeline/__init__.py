"""
Pipeline Components - Data source lifecycle and configuration records

License: MIT
"""

from .registry import ConfigurationStore, InMemoryConfigurationStore, SourceRegistry
from .lifecycle import DataSourceLifecycleController

__all__ = [
    "ConfigurationStore",
    "InMemoryConfigurationStore",
    "SourceRegistry",
    "DataSourceLifecycleController",
]
