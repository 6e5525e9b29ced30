# passkit/models/scans.py

"""
Scan Event Models Module

Write-once audit rows for scanner activity (validation, redemption, visits).
"""

from datetime import datetime
from enum import Enum

from passkit.core import db


class ScanAction(Enum):
    SCAN = 'scan'
    REDEEM = 'redeem'
    VISIT = 'visit'
    INVALID_SIGNATURE = 'invalid_signature'


class ScanResult(Enum):
    SUCCESS = 'success'
    ALREADY_REDEEMED = 'already_redeemed'
    VOIDED = 'voided'
    EXPIRED = 'expired'
    NOT_FOUND = 'not_found'
    INVALID_SIGNATURE = 'invalid_signature'


class ScanEvent(db.Model):
    """Immutable record of a scanner attempt"""
    __tablename__ = 'scan_events'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    pass_id = db.Column(db.Integer, db.ForeignKey('passes.id', ondelete='CASCADE'), index=True)
    scanner_link_id = db.Column(db.Integer, db.ForeignKey('scanner_links.id', ondelete='SET NULL'), index=True)
    action = db.Column(db.String(30), nullable=False)
    result = db.Column(db.String(30), nullable=False)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'pass_id': self.pass_id,
            'scanner_link_id': self.scanner_link_id,
            'action': self.action,
            'result': self.result,
            'ip_address': self.ip_address,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<ScanEvent {self.id} {self.action}/{self.result}>'
