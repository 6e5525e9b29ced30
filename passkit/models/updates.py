# passkit/models/updates.py

"""
Pass Update Models Module

- PassUpdate: one row per applied field mutation with per-channel delivery tracking
- BulkUpdate: a single field change applied to many passes as one job
"""

from datetime import datetime
from enum import Enum

from passkit.core import db


class DeliveryStatus(Enum):
    """Per-channel delivery state of a pass update"""
    PENDING = 'pending'
    SENT = 'sent'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class UpdateSource(Enum):
    """Where a pass update originated"""
    API = 'api'
    DEVICE = 'device'
    DASHBOARD = 'dashboard'
    BULK = 'bulk'


class BulkUpdateStatus(Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    COMPLETED_WITH_ERRORS = 'completed_with_errors'


IN_FLIGHT_BULK_STATUSES = (BulkUpdateStatus.PENDING.value, BulkUpdateStatus.PROCESSING.value)


class PassUpdate(db.Model):
    """History row for a pass field mutation"""
    __tablename__ = 'pass_updates'

    id = db.Column(db.Integer, primary_key=True)
    pass_id = db.Column(db.Integer, db.ForeignKey('passes.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    bulk_update_id = db.Column(db.Integer, db.ForeignKey('bulk_updates.id', ondelete='SET NULL'), index=True)
    source = db.Column(db.String(20), nullable=False, default=UpdateSource.API.value)

    # {key: {"old": ..., "new": ..., "change_message": ...}}
    fields_changed = db.Column(db.JSON, nullable=False, default=dict)

    apple_delivery_status = db.Column(db.String(20), nullable=False, default=DeliveryStatus.SKIPPED.value)
    google_delivery_status = db.Column(db.String(20), nullable=False, default=DeliveryStatus.SKIPPED.value)
    apple_devices_notified = db.Column(db.Integer, nullable=False, default=0)
    google_updated = db.Column(db.Boolean, nullable=False, default=False)
    error_message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pass_ = db.relationship('Pass', back_populates='updates')
    bulk_update = db.relationship('BulkUpdate', back_populates='pass_updates')

    def append_error(self, message):
        """Add a channel error without discarding the other channel's."""
        if self.error_message:
            self.error_message = f"{self.error_message}\n{message}"
        else:
            self.error_message = message

    def to_dict(self):
        return {
            'id': self.id,
            'pass_id': self.pass_id,
            'source': self.source,
            'bulk_update_id': self.bulk_update_id,
            'fields_changed': self.fields_changed,
            'apple_delivery_status': self.apple_delivery_status,
            'google_delivery_status': self.google_delivery_status,
            'apple_devices_notified': self.apple_devices_notified,
            'google_updated': self.google_updated,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<PassUpdate {self.id} pass={self.pass_id}>'


class BulkUpdate(db.Model):
    """Asynchronous single-field update across a template's passes"""
    __tablename__ = 'bulk_updates'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    pass_template_id = db.Column(db.Integer, db.ForeignKey('pass_templates.id', ondelete='CASCADE'), nullable=False, index=True)
    field_key = db.Column(db.String(100), nullable=False)
    field_value = db.Column(db.Text, nullable=False)
    filters = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(30), nullable=False, default=BulkUpdateStatus.PENDING.value, index=True)
    total_count = db.Column(db.Integer, nullable=False, default=0)
    processed_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)

    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    template = db.relationship('PassTemplate')
    pass_updates = db.relationship('PassUpdate', back_populates='bulk_update', lazy='dynamic')

    @property
    def is_in_flight(self):
        return self.status in IN_FLIGHT_BULK_STATUSES

    def to_dict(self):
        return {
            'id': self.id,
            'pass_template_id': self.pass_template_id,
            'field_key': self.field_key,
            'field_value': self.field_value,
            'filters': self.filters,
            'status': self.status,
            'total_count': self.total_count,
            'processed_count': self.processed_count,
            'failed_count': self.failed_count,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<BulkUpdate {self.id} template={self.pass_template_id} {self.status}>'
