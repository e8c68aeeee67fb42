"""Dead-letter queue for work that exhausted its retries or failed permanently.

Usage:
    from infrastructure.resilience.dead_letter import DeadLetterManager

    manager = DeadLetterManager(store)
    page = manager.list("tenant-a", take=20)
    manager.manual_retry("tenant-a", page.items[0].message_id, actor="ops@example.com")
"""

from infrastructure.resilience.dead_letter.manager import DeadLetterManager
from infrastructure.resilience.dead_letter.models import (
    DeadLetterPage,
    DeadLetterQuery,
    ProcessingStats,
)

__all__ = [
    "DeadLetterManager",
    "DeadLetterPage",
    "DeadLetterQuery",
    "ProcessingStats",
]
