"""
Incremental reconciliation: stale window detection and record merging.

A window is one calendar month, keyed "YYYY-MM". The processed-window map
stored with each deputy records when each month was last refreshed.
"""

import copy
import hashlib
import json
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union
from schemas.pipeline import FreshnessPolicy
import logging

logger = logging.getLogger(__name__)

Timestamp = Union[datetime, str]


def to_utc(value: Timestamp) -> datetime:
    """Parse an ISO string or datetime; naive values are taken as UTC"""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_window(key: str) -> tuple:
    """'2024-05' -> (2024, 5)"""
    year, month = key.split("-")
    return int(year), int(month)


def shift_month(year: int, month: int, delta: int) -> tuple:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(key: str) -> tuple:
    """First and last calendar day of a window as ISO dates"""
    year, month = parse_window(key)
    next_year, next_month = shift_month(year, month, 1)
    last_day = datetime(next_year, next_month, 1) - timedelta(days=1)
    return f"{year:04d}-{month:02d}-01", last_day.strftime("%Y-%m-%d")


def content_hash(record: Dict[str, Any], ignore_fields: Iterable[str] = ()) -> str:
    """SHA-256 over the canonical JSON form of a record, minus ignore_fields"""
    ignored = set(ignore_fields)
    if ignored:
        record = {k: v for k, v in record.items() if k not in ignored}
    canonical = json.dumps(record, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ReconciliationEngine:
    """
    Decides which windows an incremental run must re-fetch and merges fresh
    records into a previously persisted collection.

    All methods are pure: inputs are never mutated and results are new
    objects.
    """

    def trailing_windows(self, policy: FreshnessPolicy, now: Timestamp) -> List[str]:
        """The policy.window_count months ending at the anchor month, oldest first"""
        anchor = to_utc(now) - timedelta(days=policy.publication_lag_days)
        windows = []
        for offset in range(policy.window_count - 1, -1, -1):
            year, month = shift_month(anchor.year, anchor.month, -offset)
            windows.append(window_key(year, month))
        return windows

    def compute_stale_windows(
        self,
        processed: Optional[Dict[str, Timestamp]],
        policy: FreshnessPolicy,
        now: Timestamp
    ) -> List[str]:
        """
        Return the trailing windows that are missing from processed or whose
        last refresh is older than the staleness threshold.

        Args:
            processed: Window key -> last refreshed timestamp
            policy: Freshness policy
            now: Reference instant

        Returns:
            Stale window keys, oldest first
        """
        processed = processed or {}
        now_utc = to_utc(now)
        cutoff = now_utc - timedelta(days=policy.staleness_threshold_days)

        stale = []
        for key in self.trailing_windows(policy, now_utc):
            last_refreshed = processed.get(key)
            if last_refreshed is None:
                stale.append(key)
                continue
            try:
                refreshed_at = to_utc(last_refreshed)
            except (TypeError, ValueError):
                logger.warning(f"Unreadable refresh timestamp for window {key}: {last_refreshed!r}")
                stale.append(key)
                continue
            if refreshed_at < cutoff:
                stale.append(key)

        return stale

    def record_key(
        self,
        record: Dict[str, Any],
        key_field: str,
        window: str,
        record_type: str,
        ignore_fields: Iterable[str] = ()
    ) -> str:
        """
        Natural id of a record, or a content-derived fallback key.

        ignore_fields are left out of the hash; use it for values that change
        on every fetch, such as extraction timestamps.
        """
        natural_id = record.get(key_field)
        if natural_id not in (None, ""):
            return str(natural_id)
        return f"{window}:{record_type}:{content_hash(record, ignore_fields)}"

    def merge_records(
        self,
        existing: Iterable[Dict[str, Any]],
        incoming: Iterable[Dict[str, Any]],
        key_field: str = "id",
        window: str = "unknown",
        record_type: str = "record",
        ignore_fields: Iterable[str] = ()
    ) -> List[Dict[str, Any]]:
        """
        Merge incoming records over existing ones, last write wins.

        Existing records are visited first, so an incoming record with the
        same key replaces the stored one. Records without a natural id are
        kept under a content-hash key, which makes re-merging the same
        batch a no-op.

        Returns:
            New list of record copies, keyed order of first appearance
        """
        merged: Dict[str, Dict[str, Any]] = {}
        fallback_count = 0

        for record in list(existing) + list(incoming):
            if record.get(key_field) in (None, ""):
                fallback_count += 1
            key = self.record_key(record, key_field, window, record_type, ignore_fields)
            merged[key] = copy.deepcopy(record)

        if fallback_count:
            logger.warning(
                f"{fallback_count} {record_type} records without '{key_field}' "
                f"merged under content-hash keys (window {window})"
            )

        return list(merged.values())

    def update_processed_windows(
        self,
        existing: Optional[Dict[str, Timestamp]],
        windows: Iterable[str],
        now: Timestamp
    ) -> Dict[str, str]:
        """
        Return a new processed-window map with every given window set to now.

        A stored timestamp later than now is kept, so refresh times never
        move backwards.
        """
        now_utc = to_utc(now)
        updated: Dict[str, str] = {}

        for key, value in (existing or {}).items():
            updated[key] = to_utc(value).isoformat() if not isinstance(value, str) else value

        for key in windows:
            current = updated.get(key)
            if current is not None:
                try:
                    if to_utc(current) > now_utc:
                        continue
                except (TypeError, ValueError):
                    pass
            updated[key] = now_utc.isoformat()

        return updated

    def aggregate(
        self,
        records: Iterable[Dict[str, Any]],
        value_field: Optional[str] = None,
        group_by: Iterable[str] = ()
    ) -> Dict[str, Any]:
        """
        Recompute summary statistics over a merged record set.

        Returns a dict with total_records, total_value (when value_field is
        given) and one count/sum breakdown per group_by field.
        """
        records = list(records)
        stats: Dict[str, Any] = {"total_records": len(records)}

        if value_field:
            stats["total_value"] = round(
                sum(float(r.get(value_field) or 0) for r in records), 2
            )

        for field in group_by:
            breakdown: Dict[str, Dict[str, float]] = defaultdict(lambda: {"count": 0, "value": 0.0})
            for record in records:
                group = str(record.get(field) or "unknown")
                breakdown[group]["count"] += 1
                if value_field:
                    breakdown[group]["value"] = round(
                        breakdown[group]["value"] + float(record.get(value_field) or 0), 2
                    )
            stats[f"by_{field}"] = dict(sorted(breakdown.items()))

        return stats
