# passkit/repositories/scan_event_repository.py

from typing import List

from sqlalchemy.orm import Session

from passkit.models import ScanEvent
from passkit.repositories.base import TenantScopedRepository


class ScanEventRepository(TenantScopedRepository[ScanEvent]):
    """Append-only."""

    def __init__(self, session: Session):
        super().__init__(session, ScanEvent)

    def for_pass(self, tenant_id: int, pass_id: int) -> List[ScanEvent]:
        return (
            self.scoped(tenant_id)
            .filter(ScanEvent.pass_id == pass_id)
            .order_by(ScanEvent.id)
            .all()
        )
