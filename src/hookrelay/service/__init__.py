"""hookrelay service layer.

Example:
    ```python
    from hookrelay.service import HookService

    async with HookService.create() as hooks:
        hooks.start()
        await hooks.trigger("ticket.closed", {"ticket_id": "T-9"}, ticket_status="closed")
    ```
"""

from .base import HookService
from .registry import HookRegistry

__all__ = [
    "HookRegistry",
    "HookService",
]
