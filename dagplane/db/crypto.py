"""
Secret encryption with the application key.

Project secrets are encrypted before they reach the database. The rest of the
service sees them as opaque bytes.
"""

import base64

from cryptography.fernet import Fernet, InvalidToken

from ..config import MIN_APP_KEY_LENGTH
from ..errors import ConfigurationError, DagplaneError


class SecretDecryptionError(DagplaneError):
    code = "SECRET_DECRYPTION_ERROR"


class ApplicationKey:
    """Symmetric key derived from the first 32 characters of ``APP_KEY``."""

    def __init__(self, app_key: str):
        raw = app_key.encode("utf-8")
        if len(raw) < MIN_APP_KEY_LENGTH:
            raise ConfigurationError([f"--app-key must be at least {MIN_APP_KEY_LENGTH} characters"])
        self._fernet = Fernet(base64.urlsafe_b64encode(raw[:MIN_APP_KEY_LENGTH]))

    def encrypt(self, value: bytes) -> bytes:
        return self._fernet.encrypt(value)

    def decrypt(self, token: bytes) -> bytes:
        """
        Raises:
            SecretDecryptionError: If the token was not produced with this key
        """
        try:
            return self._fernet.decrypt(token)
        except InvalidToken:
            raise SecretDecryptionError("secret cannot be decrypted with the configured app key") from None
