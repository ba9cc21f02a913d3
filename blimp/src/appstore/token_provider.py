import threading
import time
from pathlib import Path
from typing import Callable, Optional

import jwt

from blimp.src.errors import ConfigError

AUDIENCE = "appstoreconnect-v1"
DEFAULT_LIFETIME = 120
# Tokens are refreshed this many seconds before they expire
REFRESH_MARGIN = 10


class TokenProvider:
    """Signs short lived ES256 tokens for the App Store Connect API"""

    def __init__(
        self,
        key_id: Optional[str],
        issuer_id: Optional[str],
        key_dir: Path,
        lifetime: int = DEFAULT_LIFETIME,
        clock: Callable[[], float] = time.time,
    ):
        self.key_id = key_id
        self.issuer_id = issuer_id
        self.key_dir = Path(key_dir).expanduser()
        self.lifetime = lifetime
        self.clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def key_path(self) -> Path:
        return self.key_dir / f"AuthKey_{self.key_id}.p8"

    def _load_private_key(self) -> str:
        if not self.key_path.exists():
            raise ConfigError(
                f"App Store Connect private key not found at {self.key_path}"
            )
        return self.key_path.read_text()

    def token(self) -> str:
        """Return a cached token, signing a new one when it is about to expire"""
        if not self.key_id or not self.issuer_id:
            raise ConfigError(
                "App Store Connect credentials not found. Set APPSTORE_CONNECT_API_KEY_ID "
                "and APPSTORE_CONNECT_API_ISSUER_ID"
            )

        with self._lock:
            now = self.clock()
            if self._token and now < self._expires_at - REFRESH_MARGIN:
                return self._token

            issued_at = int(now)
            expires_at = issued_at + self.lifetime
            payload = {
                "iss": self.issuer_id,
                "iat": issued_at,
                "exp": expires_at,
                "aud": AUDIENCE,
            }
            self._token = jwt.encode(
                payload,
                self._load_private_key(),
                algorithm="ES256",
                headers={"kid": self.key_id, "typ": "JWT"},
            )
            self._expires_at = expires_at
            return self._token
