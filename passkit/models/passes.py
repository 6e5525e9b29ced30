# passkit/models/passes.py

"""
Pass Models Module

This module contains the issued wallet pass and its state vocabulary:
- PassStatus: stored/derived status values
- UsageType: single-use vs multi-use redemption policy
- Pass: an individual issued pass with update and redemption tracking
"""

import secrets
import uuid
from datetime import datetime
from enum import Enum

from passkit.core import db

# Pass.id is a 32-bit integer column
MAX_PASS_ID = 2 ** 31 - 1


def is_valid_pass_id(value) -> bool:
    """True for an int that can name a row of the passes table."""
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= MAX_PASS_ID


class PassStatus(Enum):
    """Status of a wallet pass"""
    ACTIVE = 'active'
    REDEEMED = 'redeemed'
    VOIDED = 'voided'
    EXPIRED = 'expired'


class UsageType(Enum):
    """Redemption policy of a pass"""
    SINGLE_USE = 'single_use'
    MULTI_USE = 'multi_use'


class Platform(Enum):
    APPLE = 'apple'
    GOOGLE = 'google'


class Pass(db.Model):
    """An individual issued wallet pass"""
    __tablename__ = 'passes'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    pass_template_id = db.Column(db.Integer, db.ForeignKey('pass_templates.id', ondelete='SET NULL'), index=True)

    serial_number = db.Column(db.String(64), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    platforms = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default=PassStatus.ACTIVE.value, index=True)
    usage_type = db.Column(db.String(20), nullable=False, default=UsageType.SINGLE_USE.value)
    description = db.Column(db.String(255))

    pass_data = db.Column(db.JSON, nullable=False, default=dict)
    change_messages = db.Column(db.JSON, nullable=False, default=dict)

    # Apple web service auth; shared with the device at pass generation
    authentication_token = db.Column(db.String(64), nullable=False, default=lambda: secrets.token_hex(16))
    pkpass_path = db.Column(db.String(255))
    google_object_id = db.Column(db.String(255))

    custom_redemption_message = db.Column(db.Text)

    voided_at = db.Column(db.DateTime)
    redeemed_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    last_generated_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    # Changed only through touch(); devices poll on it
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User', back_populates='passes')
    template = db.relationship('PassTemplate', back_populates='passes')
    updates = db.relationship(
        'PassUpdate', back_populates='pass_', lazy='dynamic',
        cascade='all, delete-orphan', order_by='PassUpdate.id.desc()'
    )

    @property
    def is_voided(self):
        return self.voided_at is not None or self.status == PassStatus.VOIDED.value

    @property
    def is_redeemed(self):
        return self.redeemed_at is not None or self.status == PassStatus.REDEEMED.value

    @property
    def is_expired(self):
        if self.status == PassStatus.EXPIRED.value:
            return True
        return self.expires_at is not None and self.expires_at <= datetime.utcnow()

    @property
    def is_single_use(self):
        return self.usage_type != UsageType.MULTI_USE.value

    @property
    def current_status(self):
        """Status derived from the explicit timestamps, highest priority first."""
        if self.is_voided:
            return PassStatus.VOIDED.value
        if self.is_redeemed:
            return PassStatus.REDEEMED.value
        if self.is_expired:
            return PassStatus.EXPIRED.value
        return PassStatus.ACTIVE.value

    def is_enrolled_in(self, platform):
        if isinstance(platform, Platform):
            platform = platform.value
        return platform in (self.platforms or [])

    def void(self):
        """Mark the pass voided. Terminal."""
        now = datetime.utcnow()
        self.status = PassStatus.VOIDED.value
        self.voided_at = now
        self.updated_at = now

    def touch(self):
        """Bump updated_at so polling devices see a change."""
        self.updated_at = datetime.utcnow()

    def to_scan_dict(self):
        """Pass summary returned to scanners."""
        return {
            'id': self.id,
            'serial_number': self.serial_number,
            'status': self.current_status,
            'usage_type': self.usage_type,
            'description': self.description,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
            'custom_redemption_message': self.custom_redemption_message,
        }

    def __repr__(self):
        return f'<Pass {self.id} {self.serial_number} {self.status}>'
