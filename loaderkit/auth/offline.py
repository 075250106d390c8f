"""Offline authentication."""

import hashlib
from typing import Dict, Any


def offline_uuid(username: str) -> str:
    """Stable player UUID derived from the MD5 of the name."""
    digest = hashlib.md5(username.encode("utf-8")).hexdigest()
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:]}"


class OfflineAuthenticator:
    """Offline mode authenticator with username only."""

    @staticmethod
    async def authenticate(username: str) -> Dict[str, Any]:
        """Authenticate offline with given username."""
        if not username or len(username) > 16:
            raise ValueError("Invalid username for offline mode")

        return {
            "id": offline_uuid(username),
            "name": username,
            "type": "offline",
            "access_token": "null"  # No token needed
        }
