# passkit/models/__init__.py

"""
Models Package

Re-exports every model so `from passkit.models import Pass` works and all
tables are registered on the metadata when the package is imported.
"""

from passkit.models.tenants import User, PassTemplate, ScannerLink
from passkit.models.passes import Pass, PassStatus, UsageType, Platform, MAX_PASS_ID, is_valid_pass_id
from passkit.models.updates import (
    PassUpdate, BulkUpdate, DeliveryStatus, UpdateSource, BulkUpdateStatus,
    IN_FLIGHT_BULK_STATUSES,
)
from passkit.models.devices import DeviceRegistration
from passkit.models.scans import ScanEvent, ScanAction, ScanResult

__all__ = [
    'User',
    'PassTemplate',
    'ScannerLink',
    'Pass',
    'PassStatus',
    'UsageType',
    'Platform',
    'MAX_PASS_ID',
    'is_valid_pass_id',
    'PassUpdate',
    'BulkUpdate',
    'DeliveryStatus',
    'UpdateSource',
    'BulkUpdateStatus',
    'IN_FLIGHT_BULK_STATUSES',
    'DeviceRegistration',
    'ScanEvent',
    'ScanAction',
    'ScanResult',
]
