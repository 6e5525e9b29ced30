# passkit/services/push_service.py

"""
Wallet Pass Push Notification Service

Talks to the two wallet platforms on behalf of DeliveryDispatcher:
- Apple Wallet: silent APNs pushes with JWT token-based (or certificate) auth
- Google Wallet: updates the pass object through the Wallet Objects API
"""

import os
import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Tuple

import httpx
import jwt
from flask import current_app

from GoogleWalletPassGenerator.genericpass import GenericPassManager
from GoogleWalletPassGenerator.types import (
    GenericObject, GenericObjectId, GenericClassId,
    LocalizedString, TranslatedString, TextModuleData,
)
from GoogleWalletPassGenerator.enums import State
from GoogleWalletPassGenerator.serializer import serialize_to_json

from passkit.services.base_service import ExternalDeliveryError

logger = logging.getLogger(__name__)

APNS_SANDBOX_HOST = 'api.sandbox.push.apple.com'
APNS_PRODUCTION_HOST = 'api.push.apple.com'

# APNs statuses that mean the token will never work again
APNS_UNREGISTERED_STATUSES = (410,)
# APNs statuses worth retrying
APNS_TRANSIENT_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class ApnsResult:
    """Outcome of one push attempt to one device."""
    status_code: Optional[int]
    reason: Optional[str] = None

    @property
    def ok(self):
        return self.status_code == 200

    @property
    def unregistered(self):
        return self.status_code in APNS_UNREGISTERED_STATUSES

    @property
    def transient(self):
        # No status means the request never completed (timeout, connection reset)
        return self.status_code is None or self.status_code in APNS_TRANSIENT_STATUSES


class PushService:
    """
    Service for sending push updates to wallet passes.

    APNs Authentication:
    - Token-based (recommended): Uses JWT signed with .p8 key file
    - Certificate-based (legacy): Uses .pem certificate files
    """

    def __init__(self):
        self._jwt_token = None
        self._jwt_token_time = 0
        # JWT tokens are valid for 1 hour, refresh after 50 minutes
        self._jwt_token_lifetime = 50 * 60
        self._google_manager = None

    # =========================================================================
    # Apple Wallet Push Notifications
    # =========================================================================

    @property
    def apns_host(self) -> str:
        environment = current_app.config.get('APNS_ENVIRONMENT', 'production')
        return APNS_SANDBOX_HOST if environment == 'sandbox' else APNS_PRODUCTION_HOST

    def _get_apns_jwt_token(self) -> str:
        """
        Generate or return cached JWT token for APNs authentication.

        Raises:
            ExternalDeliveryError: if the key configuration is missing or unreadable
        """
        current_time = time.time()
        if self._jwt_token and (current_time - self._jwt_token_time) < self._jwt_token_lifetime:
            return self._jwt_token

        config = current_app.config
        key_id = config.get('APNS_KEY_ID')
        key_path = config.get('APNS_KEY_PATH')
        team_id = config.get('APNS_TEAM_ID')

        if not all([key_id, key_path, team_id]):
            raise ExternalDeliveryError(
                f"Missing APNs token config: key_id={bool(key_id)}, key_path={bool(key_path)}, team_id={bool(team_id)}",
                'APNS_NOT_CONFIGURED'
            )

        if not os.path.exists(key_path):
            raise ExternalDeliveryError(f"APNs key file not found: {key_path}", 'APNS_NOT_CONFIGURED')

        try:
            with open(key_path, 'r') as f:
                private_key = f.read()

            token = jwt.encode(
                {
                    'iss': team_id,
                    'iat': int(current_time)
                },
                private_key,
                algorithm='ES256',
                headers={
                    'alg': 'ES256',
                    'kid': key_id
                }
            )
        except Exception as e:
            logger.error(f"Failed to generate APNs JWT token from {key_path}: {e}", exc_info=True)
            raise ExternalDeliveryError(f"APNs key could not be used: {e}", 'APNS_NOT_CONFIGURED') from e

        self._jwt_token = token
        self._jwt_token_time = current_time
        logger.info(f"Generated new APNs JWT token (team: {team_id}, key: {key_id})")
        return token

    def _build_apns_client(self) -> Tuple[httpx.Client, dict]:
        """Create an HTTP/2 client and the auth headers for the configured mode."""
        config = current_app.config
        timeout = float(config.get('APNS_TIMEOUT', 10))

        if config.get('APNS_AUTH_MODE', 'token').lower() == 'token':
            token = self._get_apns_jwt_token()
            cert, auth_headers = None, {'authorization': f'bearer {token}'}
        else:
            cert_path = config.get('APNS_CERT_PATH')
            key_path = config.get('APNS_CERT_KEY_PATH')
            if not cert_path or not key_path or not os.path.exists(cert_path) or not os.path.exists(key_path):
                raise ExternalDeliveryError("Apple certificate files not configured", 'APNS_NOT_CONFIGURED')
            cert, auth_headers = (cert_path, key_path), {}

        try:
            return httpx.Client(http2=True, cert=cert, timeout=timeout), auth_headers
        except Exception as e:
            logger.error(f"Could not create APNs client: {e}", exc_info=True)
            raise ExternalDeliveryError(f"APNs client could not be created: {e}", 'APNS_NOT_CONFIGURED') from e

    def send_apple_pushes(self, targets: List[Tuple[str, str]]) -> List[ApnsResult]:
        """
        Send one silent push per (push_token, topic) pair.

        Apple Wallet passes use empty payload pushes - the notification
        just tells the device to request an update from our server.

        Args:
            targets: list of (push_token, pass_type_identifier) pairs

        Returns:
            One ApnsResult per target, in order
        """
        if not targets:
            return []

        client, auth_headers = self._build_apns_client()
        results = []
        with client:
            for push_token, topic in targets:
                results.append(self._send_apns_push(client, auth_headers, push_token, topic))

        sent = sum(1 for r in results if r.ok)
        logger.info(f"APNs batch: sent={sent}, failed={len(results) - sent}")
        return results

    def _send_apns_push(self, client: httpx.Client, auth_headers: dict, push_token: str, topic: str) -> ApnsResult:
        url = f"https://{self.apns_host}/3/device/{push_token}"
        headers = {
            'apns-topic': topic,
            'apns-push-type': 'background',
            'apns-priority': '5',
            **auth_headers,
        }

        try:
            response = client.post(url, json={}, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"APNs request failed for token {push_token[:16]}...: {e}")
            return ApnsResult(status_code=None, reason=str(e) or type(e).__name__)

        if response.status_code == 200:
            logger.debug(f"APNs push successful for token {push_token[:16]}...")
            return ApnsResult(status_code=200)

        reason = None
        try:
            reason = response.json().get('reason')
        except ValueError:
            reason = response.text or None
        logger.warning(f"APNs returned status {response.status_code} ({reason}) for token {push_token[:16]}...")
        return ApnsResult(status_code=response.status_code, reason=reason)

    # =========================================================================
    # Google Wallet Updates
    # =========================================================================

    @property
    def google_manager(self) -> GenericPassManager:
        """Lazy-load the GenericPassManager"""
        if self._google_manager is None:
            service_account_path = current_app.config.get('GOOGLE_WALLET_SERVICE_ACCOUNT')
            if not service_account_path or not os.path.exists(service_account_path):
                raise ExternalDeliveryError(
                    f"Google Wallet service account file not found at {service_account_path}",
                    'GOOGLE_NOT_CONFIGURED'
                )
            try:
                self._google_manager = GenericPassManager(service_account_path)
            except Exception as e:
                logger.error(f"Could not load Google Wallet service account: {e}", exc_info=True)
                raise ExternalDeliveryError(
                    f"Google Wallet service account could not be loaded: {e}", 'GOOGLE_NOT_CONFIGURED'
                ) from e
        return self._google_manager

    @staticmethod
    def _split_resource_id(resource_id: str) -> Tuple[str, str]:
        """Split "<issuer>.<unique>" into its parts."""
        issuer_id, sep, unique_id = (resource_id or '').partition('.')
        if not sep or not issuer_id or not unique_id:
            raise ExternalDeliveryError(f"Malformed Google Wallet id: {resource_id!r}", 'GOOGLE_BAD_ID')
        return issuer_id, unique_id

    def build_google_object(self, wallet_pass) -> dict:
        """Serialize the pass as a Google Wallet generic object."""
        issuer_id, object_unique_id = self._split_resource_id(wallet_pass.google_object_id)

        class_resource = None
        if wallet_pass.template is not None:
            class_resource = wallet_pass.template.google_class_id
        class_resource = class_resource or f"{issuer_id}.{current_app.config.get('GOOGLE_WALLET_DEFAULT_CLASS', 'passkit-generic')}"
        class_issuer_id, class_unique_id = self._split_resource_id(class_resource)

        header_text = wallet_pass.description or (wallet_pass.template.name if wallet_pass.template else wallet_pass.serial_number)
        text_modules = [
            TextModuleData(header=str(key), body=str(value))
            for key, value in sorted((wallet_pass.pass_data or {}).items())
        ]

        return serialize_to_json(GenericObject(
            id=GenericObjectId(issuerId=issuer_id, uniqueId=object_unique_id),
            classId=GenericClassId(issuerId=class_issuer_id, uniqueId=class_unique_id),
            state=State.ACTIVE if wallet_pass.current_status == 'active' else State.EXPIRED,
            header=LocalizedString(defaultValue=TranslatedString("en-US", header_text)),
            textModulesData=text_modules,
        ))

    def update_google_object(self, wallet_pass) -> None:
        """
        Push the pass's current data to its Google Wallet object.

        Google Wallet applies the change on devices directly; there is
        no device fan-out.

        Raises:
            ExternalDeliveryError: on any API or configuration failure
        """
        try:
            object_data = self.build_google_object(wallet_pass)
            self.google_manager.update_object(object_data)
        except ExternalDeliveryError:
            raise
        except Exception as e:
            raise ExternalDeliveryError(f"Google Wallet update failed: {e}", 'GOOGLE_UPDATE_FAILED') from e

        logger.info(f"Updated Google Wallet object {wallet_pass.google_object_id}")


push_service = PushService()
