# passkit/models/tenants.py

"""
Tenant Models Module

Models the core consumes but does not manage:
- User: the tenant that owns passes, templates and scanner links
- PassTemplate: the design a pass was issued from, including its field allow-list
- ScannerLink: a tokenized entry point used by scanning devices
"""

import secrets
from datetime import datetime

from passkit.core import db


class User(db.Model):
    """A tenant account owning passes."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)

    # Apple Wallet pass type identifier (pass.com.example.*); falls back to config
    apple_pass_type_id = db.Column(db.String(128), index=True)
    apple_team_id = db.Column(db.String(10))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    passes = db.relationship('Pass', back_populates='user', lazy='dynamic')
    templates = db.relationship('PassTemplate', back_populates='user', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.id} {self.email}>'


class PassTemplate(db.Model):
    """Pass design and field schema."""
    __tablename__ = 'pass_templates'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    pass_type = db.Column(db.String(50), nullable=False, default='generic')

    # Default field values; the keys double as the update allow-list when present
    design_data = db.Column(db.JSON, nullable=False, default=dict)

    google_class_id = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', back_populates='templates')
    passes = db.relationship('Pass', back_populates='template', lazy='dynamic')

    @property
    def field_keys(self):
        """Keys passes issued from this template may carry."""
        fields = (self.design_data or {}).get('fields')
        if isinstance(fields, dict):
            return set(fields.keys())
        if isinstance(fields, list):
            return {f['key'] for f in fields if isinstance(f, dict) and f.get('key')}
        return set()

    def __repr__(self):
        return f'<PassTemplate {self.id} {self.name}>'


class ScannerLink(db.Model):
    """Tokenized scanner entry point scoped to one tenant."""
    __tablename__ = 'scanner_links'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    token = db.Column(db.String(64), unique=True, nullable=False, default=lambda: secrets.token_urlsafe(32))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_used_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User')

    def touch(self):
        """Record that the link was just used."""
        self.last_used_at = datetime.utcnow()

    def __repr__(self):
        return f'<ScannerLink {self.id} user={self.user_id}>'
