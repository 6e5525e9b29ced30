# passkit/repositories/pass_repository.py

"""
Pass and pass-update data access.

Every read takes the owning tenant id explicitly, except the
*_for_authorization lookups, whose callers verify the caller against the
returned pass before using it.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, Query

from passkit.models import Pass, PassUpdate, PassStatus, is_valid_pass_id
from passkit.repositories.base import TenantScopedRepository


class PassRepository(TenantScopedRepository[Pass]):

    def __init__(self, session: Session):
        super().__init__(session, Pass)

    def find_by_serial_for_authorization(self, serial_number: str) -> Optional[Pass]:
        """Load a pass by its globally unique serial; the caller checks its token."""
        return self.session.query(Pass).filter(Pass.serial_number == serial_number).first()

    def find_for_authorization(self, pass_id) -> Optional[Pass]:
        """
        Load a pass by id without a tenant filter.

        Only for callers that authorize the result against the caller's
        identity before using it (owner checks, signed device requests).
        """
        try:
            pass_id = int(pass_id)
        except (TypeError, ValueError, OverflowError):
            return None
        if not is_valid_pass_id(pass_id):
            return None
        return self.session.get(Pass, pass_id)

    def lock_for_update(self, tenant_id: int, pass_id: int) -> Optional[Pass]:
        """
        Load the pass with an exclusive row lock held until the transaction ends.

        populate_existing() makes an already-loaded instance pick up the
        state committed by whoever held the lock before us.
        """
        return (
            self.scoped(tenant_id)
            .filter(Pass.id == pass_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def mark_redeemed_if_active(self, tenant_id: int, pass_id: int, redeemed_at: datetime) -> int:
        """
        Transition active -> redeemed in a single guarded UPDATE.

        Returns the number of rows changed; 0 means another attempt got there first
        or the pass left the active state.
        """
        return (
            self.scoped(tenant_id)
            .filter(
                Pass.id == pass_id,
                Pass.status == PassStatus.ACTIVE.value,
                Pass.redeemed_at.is_(None),
                Pass.voided_at.is_(None),
            )
            .update(
                {
                    Pass.status: PassStatus.REDEEMED.value,
                    Pass.redeemed_at: redeemed_at,
                    Pass.updated_at: redeemed_at,
                },
                synchronize_session=False,
            )
        )

    def active_for_template(self, tenant_id: int, template_id: int) -> Query:
        """Passes of a template that can still take field updates."""
        now = datetime.utcnow()
        return (
            self.scoped(tenant_id)
            .filter(
                Pass.pass_template_id == template_id,
                Pass.status == PassStatus.ACTIVE.value,
                Pass.voided_at.is_(None),
                Pass.redeemed_at.is_(None),
                or_(Pass.expires_at.is_(None), Pass.expires_at > now),
            )
            .order_by(Pass.id)
        )

    def find_bulk_targets(self, tenant_id: int, template_id: int, platform: Optional[str] = None) -> List[Pass]:
        """
        Passes a bulk update applies to.

        The platform filter runs in Python because enrollment is a JSON list.
        """
        passes = self.active_for_template(tenant_id, template_id).all()
        if platform:
            passes = [p for p in passes if p.is_enrolled_in(platform)]
        return passes

    def updated_since(self, tenant_id: int, serial_numbers: List[str], since: Optional[datetime]) -> List[Pass]:
        if not serial_numbers:
            return []
        query = self.scoped(tenant_id).filter(Pass.serial_number.in_(serial_numbers))
        if since is not None:
            query = query.filter(Pass.updated_at > since)
        return query.all()


class PassUpdateRepository(TenantScopedRepository[PassUpdate]):
    """Pass updates belong to the tenant that owns their pass."""

    def __init__(self, session: Session):
        super().__init__(session, PassUpdate)

    def scoped(self, tenant_id: int) -> Query:
        if tenant_id is None:
            raise ValueError("PassUpdate queries require a tenant id")
        return (
            self.session.query(PassUpdate)
            .join(Pass, PassUpdate.pass_id == Pass.id)
            .filter(Pass.user_id == tenant_id)
        )

    def history(self, tenant_id: int, pass_id: int, page: int = 1, per_page: int = 15) -> Tuple[List[PassUpdate], int]:
        """Updates for one pass, newest first."""
        query = (
            self.scoped(tenant_id)
            .filter(PassUpdate.pass_id == pass_id)
            .order_by(PassUpdate.id.desc())
        )
        return self._paginate(query, page, per_page)

    def prune_older_than(self, days: int) -> int:
        """Delete history rows older than the retention window across all tenants."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        return (
            self.session.query(PassUpdate)
            .filter(PassUpdate.created_at < cutoff)
            .delete(synchronize_session=False)
        )

    def lock_for_delivery(self, tenant_id: int, pass_update_id: int) -> Optional[PassUpdate]:
        """Reload one update with only its own row locked, for writing channel results."""
        return (
            self.scoped(tenant_id)
            .filter(PassUpdate.id == pass_update_id)
            .with_for_update(of=PassUpdate)
            .populate_existing()
            .first()
        )

    def pass_ids_for_bulk_update(self, tenant_id: int, bulk_update_id: int) -> set:
        rows = (
            self.scoped(tenant_id)
            .filter(PassUpdate.bulk_update_id == bulk_update_id)
            .with_entities(PassUpdate.pass_id)
            .all()
        )
        return {row.pass_id for row in rows}
