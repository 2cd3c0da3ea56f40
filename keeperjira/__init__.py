"""keeperjira - Keeper Security alerts to Jira tickets.

This package provides a modular architecture:

- keeperjira.keeper: Keeper Commander async queue client and approval lookups
- keeperjira.webhook: Webhook ingestion pipeline and FastAPI server
- keeperjira.storage: Shared key-value storage with retries
- keeperjira.models: Shared data models
- keeperjira.common: Shared utilities and common functionality
"""

__version__ = "1.0.0"

# Import main modules for easy access
from . import common
from . import keeper
from . import models
from . import storage

__all__ = [
    "common",
    "keeper",
    "models",
    "storage",
]
