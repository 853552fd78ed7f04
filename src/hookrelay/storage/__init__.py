"""Storage backends for hookrelay.

Hooks and delivery logs are persisted to Qdrant collections.

Example:
    ```python
    from hookrelay.storage import HookStorage

    async with HookStorage() as storage:
        await storage.store_hook(hook)
    ```
"""

from .base import COLLECTION_NAMES
from .client import HookStorage

__all__ = [
    "COLLECTION_NAMES",
    "HookStorage",
]
