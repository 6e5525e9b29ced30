# passkit/api/__init__.py

"""
HTTP API blueprints:
- passes_bp: owner and device-service pass updates and history
- bulk_updates_bp: bulk update jobs
- scanner_bp: scanner redeem and validate
- apple_webservice_bp: Apple Wallet web service protocol
"""

from passkit.api.passes import passes_bp
from passkit.api.bulk_updates import bulk_updates_bp
from passkit.api.scanner import scanner_bp
from passkit.api.apple_webservice import apple_webservice_bp

__all__ = ['passes_bp', 'bulk_updates_bp', 'scanner_bp', 'apple_webservice_bp']
