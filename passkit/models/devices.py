# passkit/models/devices.py

from datetime import datetime

from passkit.core import db


class DeviceRegistration(db.Model):
    """Apple Wallet device registered for push updates of one pass"""
    __tablename__ = 'device_registrations'
    __table_args__ = (
        db.UniqueConstraint(
            'device_library_identifier', 'pass_type_identifier', 'serial_number',
            name='uq_device_pass_registration'
        ),
        db.Index('ix_device_registrations_pass', 'pass_type_identifier', 'serial_number'),
    )

    id = db.Column(db.Integer, primary_key=True)
    device_library_identifier = db.Column(db.String(64), nullable=False, index=True)
    push_token = db.Column(db.String(128), nullable=False)
    pass_type_identifier = db.Column(db.String(128), nullable=False)
    serial_number = db.Column(db.String(64), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def deactivate(self):
        self.is_active = False
        self.updated_at = datetime.utcnow()

    def __repr__(self):
        return f'<DeviceRegistration {self.device_library_identifier[:8]} {self.serial_number}>'
