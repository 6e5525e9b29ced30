# passkit/repositories/__init__.py

"""
Repository Package

Data access for pass-family tables. Tenant-owned tables are only reachable
through repositories that take the tenant id as an argument.
"""

from passkit.repositories.base import BaseRepository, TenantScopedRepository
from passkit.repositories.pass_repository import PassRepository, PassUpdateRepository
from passkit.repositories.device_repository import DeviceRegistrationRepository
from passkit.repositories.bulk_update_repository import BulkUpdateRepository
from passkit.repositories.scan_event_repository import ScanEventRepository
from passkit.repositories.tenant_repository import (
    UserRepository, ScannerLinkRepository, PassTemplateRepository,
)

__all__ = [
    'BaseRepository',
    'TenantScopedRepository',
    'PassRepository',
    'PassUpdateRepository',
    'DeviceRegistrationRepository',
    'BulkUpdateRepository',
    'ScanEventRepository',
    'UserRepository',
    'ScannerLinkRepository',
    'PassTemplateRepository',
]
