from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable

from app.zeus.core.error_catalog import AppError, ErrorCatalog
from app.zeus.core.logging import log_json
from app.zeus.core.metrics import metrics
from app.zeus.services.group_matching import groups_match, normalize_groups
from app.zeus.services.toggle_cache import ToggleCache
from app.zeus.services.toggle_store import ToggleRecord, ToggleStore

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass(frozen=True)
class FeatureDecision:
    key: str
    allowed: bool
    source: str


class FeatureEvaluator:
    """Answers whether a caller may use a feature.

    One instance is built per process and owns the toggle cache for its
    lifetime. The cache is only ever emptied through ``invalidate``.
    """

    def __init__(self, store: ToggleStore, cache: ToggleCache | None = None):
        self.store = store
        self.cache = cache if cache is not None else ToggleCache()

    def evaluate(
        self,
        feature_key: str,
        caller_is_admin: bool = False,
        caller_groups: Iterable[str] | None = None,
    ) -> FeatureDecision:
        normalized_key = feature_key.strip()
        decision = self._decide(normalized_key, caller_is_admin, caller_groups)
        metrics.record_feature_evaluation(decision.source)
        return decision

    def _decide(self, feature_key: str, caller_is_admin: bool, caller_groups) -> FeatureDecision:
        if caller_is_admin:
            return FeatureDecision(key=feature_key, allowed=True, source="admin_bypass")

        record = self.cache.get(feature_key, self.store.find_by_key)
        if record is None:
            return FeatureDecision(key=feature_key, allowed=False, source="not_found")
        if not record.enabled:
            return FeatureDecision(key=feature_key, allowed=False, source="disabled")

        if not record.allowed_groups:
            return FeatureDecision(key=feature_key, allowed=True, source="open_to_all")
        if not caller_groups:
            return FeatureDecision(key=feature_key, allowed=False, source="no_caller_groups")
        if groups_match(record.allowed_groups, caller_groups):
            return FeatureDecision(key=feature_key, allowed=True, source="group_match")
        return FeatureDecision(key=feature_key, allowed=False, source="group_mismatch")

    def is_allowed(
        self,
        feature_key: str,
        caller_is_admin: bool = False,
        caller_groups: Iterable[str] | None = None,
    ) -> bool:
        return self.evaluate(feature_key, caller_is_admin, caller_groups).allowed

    def invalidate(self, feature_key: str) -> None:
        self.cache.invalidate(feature_key.strip())


def evaluate_with_fallback(
    evaluator: FeatureEvaluator,
    feature_key: str,
    *,
    caller_is_admin: bool,
    caller_groups: Iterable[str] | None,
    fallback: str,
) -> FeatureDecision:
    """Apply the deployment's store-outage policy: "deny", "allow" or "error"."""
    try:
        return evaluator.evaluate(feature_key, caller_is_admin, caller_groups)
    except AppError as exc:
        if exc.error is not ErrorCatalog.STORE_UNAVAILABLE or fallback == "error":
            raise
        allowed = fallback == "allow"
        decision = FeatureDecision(
            key=feature_key.strip(),
            allowed=allowed,
            source="fallback_allow" if allowed else "fallback_deny",
        )
        log_json(
            logger,
            {
                "event": "feature_evaluation_fallback",
                "feature_key": decision.key,
                "allowed": allowed,
                "policy": fallback,
                "details": exc.details,
            },
            level=logging.WARNING,
        )
        metrics.record_feature_evaluation(decision.source)
        return decision


class FeatureAdministrator:
    def __init__(
        self,
        store: ToggleStore,
        evaluator: FeatureEvaluator,
        *,
        key_max_length: int = 50,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.evaluator = evaluator
        self.key_max_length = key_max_length
        self._clock = clock

    def validate_key(self, feature_key: str) -> str:
        normalized_key = (feature_key or "").strip()
        if not normalized_key:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"field": "feature_key", "message": "feature key must not be blank"},
            )
        if len(normalized_key) > self.key_max_length:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={
                    "field": "feature_key",
                    "message": f"feature key exceeds {self.key_max_length} characters",
                },
            )
        return normalized_key

    def update_feature(
        self,
        feature_key: str,
        enabled: bool,
        groups: Iterable[str] | None,
        operator: str,
        description=_UNSET,
    ) -> ToggleRecord:
        normalized_key = self.validate_key(feature_key)
        if not operator or not operator.strip():
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"field": "operator", "message": "operator must not be blank"},
            )
        operator = operator.strip()
        allowed_groups = normalize_groups(groups)
        if description is not _UNSET and description is not None and len(description) > 255:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"field": "description", "message": "description exceeds 255 characters"},
            )

        # Writes read the store directly; the cache may hold a stale copy.
        existing = self.store.find_by_key(normalized_key)
        now = self._clock()
        if existing is None:
            candidate = ToggleRecord(
                feature_key=normalized_key,
                enabled=bool(enabled),
                description=None if description is _UNSET else description,
                allowed_groups=allowed_groups,
                created_by=operator,
                created_at=now,
                updated_by=operator,
                updated_at=now,
            )
        else:
            candidate = replace(
                existing,
                enabled=bool(enabled),
                description=existing.description if description is _UNSET else description,
                allowed_groups=allowed_groups,
                updated_by=operator,
                updated_at=now,
            )
            if _same_state(existing, candidate):
                # The store may have moved ahead of this process's cache.
                self.evaluator.invalidate(normalized_key)
                self._log_update(candidate, created=False, changed=False)
                metrics.record_feature_update("unchanged")
                return existing

        try:
            stored = self.store.upsert(candidate)
        except AppError as exc:
            metrics.record_feature_update(exc.error.code.lower())
            raise
        # Only after the commit; evicting first would let a reader re-cache the old row.
        self.evaluator.invalidate(normalized_key)
        metrics.record_feature_update("created" if existing is None else "updated")
        self._log_update(stored, created=existing is None, changed=True)
        return stored

    def get_feature(self, feature_key: str) -> ToggleRecord:
        normalized_key = self.validate_key(feature_key)
        record = self.store.find_by_key(normalized_key)
        if record is None:
            raise AppError(ErrorCatalog.FEATURE_NOT_FOUND, details={"feature_key": normalized_key})
        return record

    def list_features(self, *, limit: int, offset: int = 0) -> tuple[list[ToggleRecord], int]:
        return self.store.list_records(limit=limit, offset=offset)

    def _log_update(self, record: ToggleRecord, *, created: bool, changed: bool) -> None:
        log_json(
            logger,
            {
                "event": "feature_toggle_updated",
                "feature_key": record.feature_key,
                "enabled": record.enabled,
                "allowed_groups": sorted(record.allowed_groups),
                "operator": record.updated_by,
                "created": created,
                "changed": changed,
                "version": record.version,
            },
        )


def _same_state(existing: ToggleRecord, candidate: ToggleRecord) -> bool:
    return (
        existing.enabled == candidate.enabled
        and existing.allowed_groups == candidate.allowed_groups
        and existing.description == candidate.description
        and existing.updated_by == candidate.updated_by
    )
