"""
In-memory fingerprint store: change decisions against the last fingerprint
seen per source.
"""

from typing import Dict, Optional

import structlog

from scheduler.models import ChangeDecision

logger = structlog.get_logger(__name__)


class FingerprintStore:
    """Last-seen fingerprint per source; absence means never observed."""

    def __init__(self):
        self._fingerprints: Dict[str, str] = {}
        self.logger = logger.bind(component="fingerprint_store")

    def observe(self, source_id: str, fingerprint: Optional[str]) -> ChangeDecision:
        """
        Compare a new fingerprint with the cached one and record it.

        Args:
            source_id: Source identity
            fingerprint: New fingerprint, None when the content was not re-read

        Returns:
            FIRST_SEEN, UNCHANGED or CHANGED
        """
        if fingerprint is None:
            return ChangeDecision.UNCHANGED

        previous = self._fingerprints.get(source_id)
        if previous is None:
            self._fingerprints[source_id] = fingerprint
            self.logger.debug("Recorded first fingerprint", source=source_id, fingerprint=fingerprint)
            return ChangeDecision.FIRST_SEEN

        if previous == fingerprint:
            return ChangeDecision.UNCHANGED

        self._fingerprints[source_id] = fingerprint
        self.logger.info(
            "Fingerprint changed",
            source=source_id,
            old_fingerprint=previous,
            new_fingerprint=fingerprint
        )
        return ChangeDecision.CHANGED

    def get(self, source_id: str) -> Optional[str]:
        return self._fingerprints.get(source_id)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._fingerprints

    def __len__(self) -> int:
        return len(self._fingerprints)
