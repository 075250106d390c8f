"""Content-addressable asset storage."""

from .store import AssetRef, AssetStore, IndexVerification, RepairResult, VerifyResult

__all__ = ["AssetRef", "AssetStore", "IndexVerification", "RepairResult", "VerifyResult"]
