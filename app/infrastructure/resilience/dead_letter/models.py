"""Dead-letter query and statistics models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from infrastructure.idempotency.models import ProcessingRecord


@dataclass(frozen=True)
class DeadLetterQuery:
    """Operator filter over dead-lettered records.

    The date window applies to ``dead_lettered_at``: ``since`` inclusive,
    ``until`` exclusive.
    """

    since: Optional[datetime] = None
    until: Optional[datetime] = None
    message_type: Optional[str] = None
    source_topic: Optional[str] = None


@dataclass
class DeadLetterPage:
    """One page of dead-lettered records, newest first."""

    items: List[ProcessingRecord]
    total: int
    skip: int
    take: int

    @property
    def has_more(self) -> bool:
        return self.skip + len(self.items) < self.total


@dataclass
class ProcessingStats:
    """Processing statistics for one tenant over a time window.

    Attributes:
        tenant_id: Tenant the statistics cover
        window_start: Earliest ``received_at`` counted (None means all time)
        window_end: When the statistics were computed
        total: Records counted
        by_status: Record count per status value
        dead_letter_rate: Dead-lettered records over finished records
            (completed, dead-lettered or cancelled), 0.0 when none finished
        mean_attempts_to_success: Average attempt count of completed records
        dead_letters_by_type: Dead-lettered count per message type
        dead_letters_by_reason: Dead-lettered count per reason
        oldest_dead_letter_at: Earliest ``dead_lettered_at``
        newest_dead_letter_at: Latest ``dead_lettered_at``
    """

    tenant_id: str
    window_start: Optional[datetime]
    window_end: datetime
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    dead_letter_rate: float = 0.0
    mean_attempts_to_success: Optional[float] = None
    dead_letters_by_type: Dict[str, int] = field(default_factory=dict)
    dead_letters_by_reason: Dict[str, int] = field(default_factory=dict)
    oldest_dead_letter_at: Optional[datetime] = None
    newest_dead_letter_at: Optional[datetime] = None
