# passkit/repositories/tenant_repository.py

"""
Lookups that establish which tenant a request belongs to.

These are the only reads not filtered by a tenant id, since their job is to
resolve one from a credential.
"""

from typing import Optional

from sqlalchemy.orm import Session

from passkit.models import User, PassTemplate, ScannerLink
from passkit.repositories.base import BaseRepository, TenantScopedRepository


class UserRepository(BaseRepository[User]):

    def __init__(self, session: Session):
        super().__init__(session, User)

    def get_by_id(self, user_id) -> Optional[User]:
        try:
            return self.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    def find_by_pass_type_identifier(self, pass_type_identifier: str) -> Optional[User]:
        return self.query().filter(User.apple_pass_type_id == pass_type_identifier).first()


class ScannerLinkRepository(BaseRepository[ScannerLink]):

    def __init__(self, session: Session):
        super().__init__(session, ScannerLink)

    def find_active_by_token(self, token: str) -> Optional[ScannerLink]:
        if not token:
            return None
        return (
            self.query()
            .filter(ScannerLink.token == token, ScannerLink.is_active.is_(True))
            .first()
        )


class PassTemplateRepository(TenantScopedRepository[PassTemplate]):

    def __init__(self, session: Session):
        super().__init__(session, PassTemplate)

    def lock_for_tenant(self, tenant_id: int, template_id: int) -> Optional[PassTemplate]:
        """Serializes bulk-update starts on one template."""
        return (
            self.scoped(tenant_id)
            .filter(PassTemplate.id == template_id)
            .with_for_update()
            .first()
        )
