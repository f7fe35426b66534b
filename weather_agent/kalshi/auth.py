"""
Kalshi RSA key-pair authentication.

Signs API requests using RSA-PSS with the user's private key.
"""

import base64
import time
from pathlib import Path
from typing import Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from ..errors import AuthError


class KalshiAuth:
    """Handles RSA-PSS signing for Kalshi API authentication."""

    def __init__(self, key_id: str = "", private_key_path: str = ""):
        from ..config import config
        self._key_id = key_id or config.kalshi.key_id
        self._private_key_path = private_key_path or config.kalshi.private_key_path
        self._private_key: Optional[rsa.RSAPrivateKey] = None
        self._load_error: Optional[str] = None

        if self._private_key_path and Path(self._private_key_path).exists():
            self._load_private_key()

    def _load_private_key(self):
        """Load RSA private key from PEM file."""
        try:
            pem_data = Path(self._private_key_path).read_bytes()
            self._private_key = serialization.load_pem_private_key(pem_data, password=None)
        except (OSError, ValueError, TypeError) as e:
            self._load_error = str(e)
            self._private_key = None

    @property
    def is_configured(self) -> bool:
        """Check if API credentials are configured."""
        return bool(self._key_id and self._private_key is not None)

    @property
    def key_id(self) -> str:
        return self._key_id

    def validate_for_trading(self) -> tuple[bool, str]:
        """Validate that credentials are ready for live trading."""
        if not self._key_id:
            return False, "KALSHI_KEY_ID not set in environment"
        if not self._private_key_path:
            return False, "KALSHI_PRIVATE_KEY_PATH not set in environment"
        if not Path(self._private_key_path).exists():
            return False, f"Private key file not found: {self._private_key_path}"
        if self._private_key is None:
            return False, f"Failed to load private key from PEM file: {self._load_error}"
        return True, "Kalshi credentials validated"

    def sign(self, timestamp_ms: str, method: str, path: str) -> str:
        """Base64 RSA-PSS/SHA-256 signature of timestamp + METHOD + path."""
        if not self.is_configured:
            raise AuthError("Kalshi auth not configured. Set KALSHI_KEY_ID and KALSHI_PRIVATE_KEY_PATH.")
        message = timestamp_ms + method.upper() + path
        signature = self._private_key.sign(
            message.encode("utf-8"),
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=padding.PSS.DIGEST_LENGTH,
            ),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode("utf-8")

    def get_auth_headers(self, method: str, path: str) -> dict[str, str]:
        """Generate signed authentication headers for a Kalshi API request.

        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            path: Full URL path (e.g., /trade-api/v2/portfolio/balance). Any
                query string is dropped before signing.

        Raises:
            AuthError: credentials missing or unusable.
        """
        path = path.split("?", 1)[0]
        timestamp_ms = str(int(time.time() * 1000))
        return {
            "KALSHI-ACCESS-KEY": self._key_id,
            "KALSHI-ACCESS-TIMESTAMP": timestamp_ms,
            "KALSHI-ACCESS-SIGNATURE": self.sign(timestamp_ms, method, path),
            "Content-Type": "application/json",
        }
