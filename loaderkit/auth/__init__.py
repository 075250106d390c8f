"""Player identity for launch arguments."""

from .offline import OfflineAuthenticator, offline_uuid

__all__ = ["OfflineAuthenticator", "offline_uuid"]
