"""
Provider credential encryption
Secrets in whatsapp_config are Fernet-encrypted when CREDENTIALS_ENCRYPTION_KEY is set
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from . import config

logger = logging.getLogger(__name__)


class CredentialError(Exception):
    """A stored credential could not be decrypted"""


def get_cipher(key: Optional[str] = None) -> Optional[Fernet]:
    """Fernet for the given key, or for CREDENTIALS_ENCRYPTION_KEY. Raises ValueError on a malformed key."""
    key = key if key is not None else config.CREDENTIALS_ENCRYPTION_KEY
    return Fernet(key) if key else None


def encrypt_credential(credential: str, cipher: Optional[Fernet] = None) -> str:
    """Encrypt a credential for storage (stored as-is when no key is configured)"""
    cipher = cipher or get_cipher()
    if cipher is None:
        return credential
    return cipher.encrypt(credential.encode()).decode()


def decrypt_credential(stored: Optional[str], cipher: Optional[Fernet] = None) -> Optional[str]:
    """Decrypt a stored credential"""
    if not stored:
        return stored
    cipher = cipher or get_cipher()
    if cipher is None:
        return stored
    try:
        return cipher.decrypt(stored.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Failed to decrypt stored provider credential")
        raise CredentialError("Failed to decrypt credentials") from e
