from datetime import datetime, timezone
from typing import Any, Dict, Optional

from marketplace.common.enums import AuditOutcome
from marketplace.credits.models import LedgerAuditRecord
from marketplace.credits.repository import LedgerAuditRepository


class LedgerAuditLogger:
    def __init__(self, repository: LedgerAuditRepository) -> None:
        self._repository = repository

    @property
    def repository(self) -> LedgerAuditRepository:
        return self._repository

    def log(
        self,
        *,
        action: str,
        outcome: AuditOutcome,
        user_id: Optional[str],
        params: Dict[str, Any],
        error_code: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> LedgerAuditRecord:
        record = LedgerAuditRecord(
            audit_id=self._repository.new_id(),
            action=action,
            outcome=outcome,
            user_id=user_id,
            params=params,
            error_code=error_code,
            created_at=created_at or datetime.now(tz=timezone.utc),
        )
        self._repository.add(record)
        return record
