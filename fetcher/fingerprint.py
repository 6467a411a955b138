"""
Deterministic 64-bit fingerprints for feed items and tag listings.
"""

import hashlib
from datetime import datetime
from typing import Iterable, Optional, Tuple

FINGERPRINT_BYTES = 8


class ContentFingerprinter:
    """Reduces source content to a fixed-width fingerprint."""

    @staticmethod
    def _new_hasher():
        return hashlib.blake2b(digest_size=FINGERPRINT_BYTES)

    def fingerprint_identity(self, identity: str) -> str:
        """
        Fingerprint the identity value of a feed item.

        Args:
            identity: guid, publication date or link of the newest item

        Returns:
            16 character hex digest
        """
        hasher = self._new_hasher()
        hasher.update(identity.encode("utf-8"))
        return hasher.hexdigest()

    def fingerprint_tags(self, tags: Iterable[Tuple[int, Optional[datetime]]]) -> str:
        """
        Fold (id, last_updated) pairs into one fingerprint, in the given order.

        Args:
            tags: Tag identifiers and update timestamps as returned by the registry

        Returns:
            16 character hex digest
        """
        hasher = self._new_hasher()
        for tag_id, last_updated in tags:
            stamp = last_updated.isoformat() if last_updated else ""
            hasher.update(f"{tag_id}\x1f{stamp}\x1e".encode("utf-8"))
        return hasher.hexdigest()
