"""
Snapshot-of-record archive.

Keeps pricing snapshots per provider in-memory, newest first. Each new
snapshot is diffed against the current one before it is adopted.
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from stackprice.core.config import config
from stackprice.domain.change_models import ChangeReport
from stackprice.domain.pricing_models import PricingSnapshot
from stackprice.services.change_detector import ChangeDetector, get_change_detector


logger = logging.getLogger(__name__)


class SnapshotArchive:
    """
    In-memory snapshot archive.

    Stands in for the durable storage collaborator. Stored snapshots are
    immutable; readers always receive copies.
    """

    def __init__(
        self,
        history_limit: Optional[int] = None,
        detector: Optional[ChangeDetector] = None
    ):
        """
        Initialize snapshot archive.

        Args:
            history_limit: Snapshots kept per provider (default: config.SNAPSHOT_HISTORY_LIMIT)
            detector: Change detector used to diff incoming snapshots
        """
        self._entries: Dict[str, List[Dict[str, Any]]] = {}
        self.history_limit = history_limit or config.SNAPSHOT_HISTORY_LIMIT
        self.detector = detector or get_change_detector()

    def record(self, snapshot: PricingSnapshot, reason: Optional[str] = None) -> ChangeReport:
        """
        Diff a snapshot against the current one and adopt it if anything changed.

        Args:
            snapshot: Newly ingested snapshot
            reason: Optional note stored with the snapshot

        Returns:
            ChangeReport against the previous current snapshot
        """
        previous = self.current(snapshot.provider)
        report = self.detector.diff(previous, snapshot)

        if not report.has_changes:
            logger.info("Pricing for %s unchanged; keeping current snapshot", snapshot.provider)
            return report

        entry = {
            "snapshot": snapshot.to_dict(),
            "version": snapshot.version,
            "recorded_at": datetime.now(timezone.utc).isoformat(),
            "reason": reason,
            "change": report.to_dict(),
        }

        # Store snapshot (deep copy to ensure immutability)
        self._entries.setdefault(snapshot.provider, []).insert(0, copy.deepcopy(entry))
        logger.info(
            "Adopted %s snapshot %s (%s)",
            snapshot.provider,
            entry["version"],
            report.summary,
        )

        self.prune(snapshot.provider, self.history_limit)
        return report

    def current(self, provider: str) -> Optional[PricingSnapshot]:
        """
        Get the current snapshot-of-record for a provider.

        Returns:
            Latest snapshot, or None if the provider has never been recorded
        """
        entries = self._entries.get(provider)
        if not entries:
            return None
        return PricingSnapshot.from_dict(entries[0]["snapshot"])

    def history(self, provider: str) -> List[Dict[str, Any]]:
        """
        Get archived entries for a provider, newest first.

        Returns:
            Entries with snapshot, version, recorded_at, reason and change (deep copies)
        """
        return copy.deepcopy(self._entries.get(provider, []))

    def prune(self, provider: str, keep: Optional[int] = None) -> int:
        """
        Delete all but the newest snapshots for a provider.

        Args:
            provider: Provider id
            keep: Number of snapshots to keep (default: history limit)

        Returns:
            Number of snapshots deleted
        """
        keep = self.history_limit if keep is None else max(keep, 0)
        entries = self._entries.get(provider, [])
        deleted = max(len(entries) - keep, 0)
        if deleted:
            self._entries[provider] = entries[:keep]
            logger.info("Pruned %d old %s snapshots", deleted, provider)
        return deleted

    def providers(self) -> List[str]:
        """Providers with at least one archived snapshot."""
        return sorted(provider for provider, entries in self._entries.items() if entries)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get archive statistics (for debugging/monitoring).

        Returns:
            Dictionary with stats
        """
        return {
            "providers": len(self.providers()),
            "total_snapshots": sum(len(entries) for entries in self._entries.values()),
            "history_limit": self.history_limit,
        }


# Global singleton instance
_snapshot_archive: Optional[SnapshotArchive] = None


def get_snapshot_archive() -> SnapshotArchive:
    """
    Get the global snapshot archive instance.

    Returns:
        SnapshotArchive instance
    """
    global _snapshot_archive
    if _snapshot_archive is None:
        _snapshot_archive = SnapshotArchive()
    return _snapshot_archive
