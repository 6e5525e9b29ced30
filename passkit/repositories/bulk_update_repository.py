# passkit/repositories/bulk_update_repository.py

from typing import Optional

from sqlalchemy.orm import Session

from passkit.models import BulkUpdate, IN_FLIGHT_BULK_STATUSES
from passkit.repositories.base import TenantScopedRepository


class BulkUpdateRepository(TenantScopedRepository[BulkUpdate]):

    def __init__(self, session: Session):
        super().__init__(session, BulkUpdate)

    def in_flight_for_template(self, tenant_id: int, template_id: int) -> Optional[BulkUpdate]:
        return (
            self.scoped(tenant_id)
            .filter(
                BulkUpdate.pass_template_id == template_id,
                BulkUpdate.status.in_(IN_FLIGHT_BULK_STATUSES),
            )
            .first()
        )

    def increment_counts(self, tenant_id: int, bulk_update_id: int, processed: int = 0, failed: int = 0) -> None:
        """Bump progress counters in the database rather than from a stale copy."""
        values = {}
        if processed:
            values[BulkUpdate.processed_count] = BulkUpdate.processed_count + processed
        if failed:
            values[BulkUpdate.failed_count] = BulkUpdate.failed_count + failed
        if not values:
            return
        (
            self.scoped(tenant_id)
            .filter(BulkUpdate.id == bulk_update_id)
            .update(values, synchronize_session=False)
        )

    def exists(self, bulk_update_id) -> bool:
        """Whether the job exists for any tenant; used to tell 403 from 404."""
        try:
            bulk_update_id = int(bulk_update_id)
        except (TypeError, ValueError):
            return False
        return self.session.query(BulkUpdate.id).filter(BulkUpdate.id == bulk_update_id).first() is not None
