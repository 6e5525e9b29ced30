# passkit/repositories/device_repository.py

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from passkit.models import DeviceRegistration
from passkit.repositories.base import TenantScopedRepository


class DeviceRegistrationRepository(TenantScopedRepository[DeviceRegistration]):

    def __init__(self, session: Session):
        super().__init__(session, DeviceRegistration)

    def _for_pass(self, tenant_id: int, pass_type_identifier: str, serial_number: str):
        return self.scoped(tenant_id).filter(
            DeviceRegistration.pass_type_identifier == pass_type_identifier,
            DeviceRegistration.serial_number == serial_number,
        )

    def active_for_pass(self, tenant_id: int, pass_type_identifier: str, serial_number: str) -> List[DeviceRegistration]:
        return (
            self._for_pass(tenant_id, pass_type_identifier, serial_number)
            .filter(DeviceRegistration.is_active.is_(True))
            .order_by(DeviceRegistration.id)
            .all()
        )

    def count_active_for_pass(self, tenant_id: int, pass_type_identifier: str, serial_number: str) -> int:
        return (
            self._for_pass(tenant_id, pass_type_identifier, serial_number)
            .filter(DeviceRegistration.is_active.is_(True))
            .count()
        )

    def find(self, tenant_id: int, device_library_identifier: str,
             pass_type_identifier: str, serial_number: str) -> Optional[DeviceRegistration]:
        return (
            self._for_pass(tenant_id, pass_type_identifier, serial_number)
            .filter(DeviceRegistration.device_library_identifier == device_library_identifier)
            .first()
        )

    def upsert(self, tenant_id: int, device_library_identifier: str, pass_type_identifier: str,
               serial_number: str, push_token: str) -> Tuple[DeviceRegistration, bool]:
        """
        Create or refresh a registration keyed by (device, pass type, serial).

        Returns:
            Tuple of (registration, created)
        """
        registration = self.find(tenant_id, device_library_identifier, pass_type_identifier, serial_number)
        if registration:
            registration.push_token = push_token
            registration.is_active = True
            registration.updated_at = datetime.utcnow()
            return registration, False

        registration = DeviceRegistration(
            device_library_identifier=device_library_identifier,
            pass_type_identifier=pass_type_identifier,
            serial_number=serial_number,
            push_token=push_token,
            user_id=tenant_id,
            is_active=True,
        )
        self.add(registration)
        return registration, True

    def serials_for_device(self, tenant_id: int, device_library_identifier: str,
                           pass_type_identifier: str) -> List[str]:
        rows = (
            self.scoped(tenant_id)
            .filter(
                DeviceRegistration.device_library_identifier == device_library_identifier,
                DeviceRegistration.pass_type_identifier == pass_type_identifier,
                DeviceRegistration.is_active.is_(True),
            )
            .with_entities(DeviceRegistration.serial_number)
            .all()
        )
        return [row.serial_number for row in rows]

    def tenants_for_device(self, device_library_identifier: str, pass_type_identifier: str) -> List[int]:
        """
        Tenants holding active registrations for a device and pass type.

        Turns the protocol's device path into tenant ids before any scoped read.
        """
        rows = (
            self.query()
            .filter(
                DeviceRegistration.device_library_identifier == device_library_identifier,
                DeviceRegistration.pass_type_identifier == pass_type_identifier,
                DeviceRegistration.is_active.is_(True),
            )
            .with_entities(DeviceRegistration.user_id)
            .distinct()
            .all()
        )
        return [row.user_id for row in rows]
