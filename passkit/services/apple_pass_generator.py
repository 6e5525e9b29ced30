# passkit/services/apple_pass_generator.py

"""
Apple Wallet Pass Generator

Builds signed .pkpass bundles with the wallet library. Field layout comes
from the template's design_data["fields"] when present; any other pass_data
keys land on the back of the pass.
"""

import os
import logging
from io import BytesIO
from typing import Dict, List, Optional

from flask import current_app
from wallet.models import Pass as PkPass, Barcode, Generic, Field

from passkit.services.base_service import ExternalDeliveryError
from passkit.utils.signatures import sign_pass_payload, resolve_secret

logger = logging.getLogger(__name__)

FIELD_SECTIONS = {
    'header': 'headerFields',
    'primary': 'primaryFields',
    'secondary': 'secondaryFields',
    'auxiliary': 'auxiliaryFields',
    'back': 'backFields',
}

ASSET_FILES = ('icon.png', 'icon@2x.png', 'logo.png', 'logo@2x.png', 'thumbnail.png', 'thumbnail@2x.png')


class ApplePassConfig:
    """Certificate and identity settings for signing passes."""

    def __init__(self, config=None):
        config = config or current_app.config
        self.team_identifier = config.get('APPLE_TEAM_IDENTIFIER') or config.get('APNS_TEAM_ID')
        self.certificate_path = config.get('APPLE_CERT_PATH')
        self.key_path = config.get('APPLE_KEY_PATH')
        self.wwdr_path = config.get('APPLE_WWDR_PATH')
        self.key_password = config.get('APPLE_KEY_PASSWORD', '')
        self.web_service_url = config.get('WALLET_WEB_SERVICE_URL', '')
        self.assets_path = config.get('APPLE_PASS_ASSETS_PATH')
        self.organization_name = config.get('APPLE_ORGANIZATION_NAME', 'PassKit')

    def validate(self):
        missing = []
        for name, path in [
            ('Certificate', self.certificate_path),
            ('Private Key', self.key_path),
            ('WWDR Certificate', self.wwdr_path),
        ]:
            if not path or not os.path.exists(path):
                missing.append(f"{name} not found at {path}")
        if not self.team_identifier:
            missing.append("Team identifier is not configured")
        if missing:
            raise ExternalDeliveryError(
                f"Apple Wallet configuration errors: {'; '.join(missing)}", 'APPLE_NOT_CONFIGURED'
            )


class ApplePassGenerator:

    def __init__(self, config: Optional[ApplePassConfig] = None):
        self.config = config or ApplePassConfig()

    def _layout(self, wallet_pass) -> List[Dict]:
        """Ordered field layout: template-declared fields first, then the rest on the back."""
        data = wallet_pass.pass_data or {}
        declared = []
        template = wallet_pass.template
        if template is not None:
            fields = (template.design_data or {}).get('fields')
            if isinstance(fields, list):
                declared = [f for f in fields if isinstance(f, dict) and f.get('key')]
            elif isinstance(fields, dict):
                declared = [{'key': key, 'label': key} for key in fields]

        layout = []
        seen = set()
        for field_def in declared:
            key = field_def['key']
            seen.add(key)
            if key not in data:
                continue
            layout.append({
                'key': key,
                'label': field_def.get('label', key),
                'section': field_def.get('section', 'secondary'),
            })
        for key in data:
            if key not in seen:
                layout.append({'key': key, 'label': key, 'section': 'back'})
        return layout

    def _build_card(self, wallet_pass) -> Generic:
        card_info = Generic()
        change_messages = wallet_pass.change_messages or {}
        data = wallet_pass.pass_data or {}

        for field_def in self._layout(wallet_pass):
            value = data.get(field_def['key'])
            pass_field = Field(field_def['key'], '' if value is None else str(value), field_def['label'])
            if field_def['key'] in change_messages:
                pass_field.changeMessage = change_messages[field_def['key']]
            section = FIELD_SECTIONS.get(field_def['section'], 'secondaryFields')
            getattr(card_info, section).append(pass_field)
        return card_info

    def build_pass(self, wallet_pass, pass_type_identifier: str) -> PkPass:
        pass_obj = PkPass(
            self._build_card(wallet_pass),
            passTypeIdentifier=pass_type_identifier,
            organizationName=self.config.organization_name,
            teamIdentifier=self.config.team_identifier,
        )
        pass_obj.serialNumber = wallet_pass.serial_number
        pass_obj.description = wallet_pass.description or (
            wallet_pass.template.name if wallet_pass.template else 'Wallet pass'
        )

        secret = resolve_secret(
            current_app.config.get('PASS_PAYLOAD_SECRET') or current_app.config.get('SECRET_KEY')
        )
        pass_obj.barcode = Barcode(
            message=sign_pass_payload(wallet_pass.id, secret),
            format='PKBarcodeFormatQR'
        )

        if self.config.web_service_url:
            pass_obj.webServiceURL = self.config.web_service_url
            pass_obj.authenticationToken = wallet_pass.authentication_token
        else:
            logger.warning("No web_service_url configured - push updates will not work")

        return pass_obj

    def _add_assets(self, pass_obj: PkPass) -> None:
        if not self.config.assets_path:
            return
        for name in ASSET_FILES:
            path = os.path.join(self.config.assets_path, name)
            if os.path.exists(path):
                with open(path, 'rb') as f:
                    pass_obj.addFile(name, BytesIO(f.read()))

    def generate(self, wallet_pass, pass_type_identifier: str) -> bytes:
        """
        Build and sign a .pkpass for the pass's current data.

        Raises:
            ExternalDeliveryError: signing material is missing or signing failed
        """
        self.config.validate()
        pass_obj = self.build_pass(wallet_pass, pass_type_identifier)
        self._add_assets(pass_obj)

        buffer = BytesIO()
        try:
            pass_obj.create(
                self.config.certificate_path,
                self.config.key_path,
                self.config.wwdr_path,
                self.config.key_password,
                buffer
            )
        except Exception as e:
            logger.error(f"Error signing Apple Wallet pass {wallet_pass.serial_number}: {e}", exc_info=True)
            raise ExternalDeliveryError(f"Could not sign pass: {e}", 'PKPASS_SIGNING_FAILED') from e

        logger.info(f"Generated Apple Wallet pass {wallet_pass.serial_number}")
        return buffer.getvalue()
