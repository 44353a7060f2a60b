"""Cookie sealing using Fernet symmetric encryption."""

import base64
import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from mailcode.utils.timezone import to_unix

logger = logging.getLogger(__name__)


def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet-compatible key from an arbitrary server secret."""
    key_material = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key_material)


class EncryptionService:
    """
    Seals small JSON payloads into opaque cookie values.

    Fernet both encrypts and authenticates, so a tampered cookie fails to
    open. Its embedded timestamp enforces an absolute max age server-side,
    independent of the browser honouring Max-Age.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("A non-empty secret is required to seal cookies")
        self._fernet = Fernet(derive_fernet_key(secret))

    def seal(self, payload: Dict[str, Any], now: datetime) -> str:
        """Encrypt a payload, stamping it with ``now``."""
        data = json.dumps(payload, separators=(",", ":")).encode()
        return self._fernet.encrypt_at_time(data, to_unix(now)).decode()

    def unseal(self, token: str, max_age_seconds: int, now: datetime) -> Optional[Dict[str, Any]]:
        """Return the payload, or None when the value is tampered, expired or malformed."""
        if not token:
            return None
        try:
            data = self._fernet.decrypt_at_time(token.encode(), max_age_seconds, to_unix(now))
        except (InvalidToken, UnicodeEncodeError):
            logger.debug("Rejected sealed cookie (tampered or expired)")
            return None

        try:
            payload = json.loads(data)
        except ValueError:
            logger.warning("Sealed cookie held malformed JSON")
            return None
        return payload if isinstance(payload, dict) else None
