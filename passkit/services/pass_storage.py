# passkit/services/pass_storage.py

"""
Path-keyed blob store for generated .pkpass files.

Layout: <PASS_STORAGE_PATH>/passes/<pass id>/pass.pkpass
A stored file is reused until the pass changes after it was generated.
"""

import os
import logging
import tempfile
from datetime import datetime
from typing import Optional

from flask import current_app

from passkit.services.apple_pass_generator import ApplePassGenerator

logger = logging.getLogger(__name__)


class PassStorage:

    def __init__(self, root: Optional[str] = None, generator: Optional[ApplePassGenerator] = None):
        self.root = root or current_app.config.get('PASS_STORAGE_PATH', 'storage')
        self._generator = generator

    @property
    def generator(self) -> ApplePassGenerator:
        if self._generator is None:
            self._generator = ApplePassGenerator()
        return self._generator

    @staticmethod
    def relative_path(wallet_pass) -> str:
        return os.path.join('passes', str(wallet_pass.id), 'pass.pkpass')

    def absolute_path(self, relative_path: str) -> str:
        return os.path.join(self.root, relative_path)

    def is_fresh(self, wallet_pass) -> bool:
        if not wallet_pass.pkpass_path or not wallet_pass.last_generated_at:
            return False
        if not os.path.exists(self.absolute_path(wallet_pass.pkpass_path)):
            return False
        return wallet_pass.last_generated_at >= wallet_pass.updated_at

    def write(self, wallet_pass, data: bytes) -> str:
        relative = self.relative_path(wallet_pass)
        target = self.absolute_path(relative)
        os.makedirs(os.path.dirname(target), exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(target), suffix='.tmp')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, target)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return relative

    def read(self, wallet_pass) -> bytes:
        with open(self.absolute_path(wallet_pass.pkpass_path), 'rb') as f:
            return f.read()

    def ensure_generated(self, wallet_pass, pass_type_identifier: str) -> bytes:
        """
        Return the pass's .pkpass bytes, regenerating when missing or stale.

        Sets pkpass_path and last_generated_at; the caller commits.
        """
        if self.is_fresh(wallet_pass):
            return self.read(wallet_pass)

        logger.info(f"Regenerating .pkpass for pass {wallet_pass.id}")
        data = self.generator.generate(wallet_pass, pass_type_identifier)
        wallet_pass.pkpass_path = self.write(wallet_pass, data)
        wallet_pass.last_generated_at = max(datetime.utcnow(), wallet_pass.updated_at)
        return data
