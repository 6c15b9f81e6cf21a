from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.zeus.core.error_catalog import AppError, ErrorCatalog
from app.zeus.core.errors import is_lock_timeout
from app.zeus.core.metrics import metrics
from app.zeus.db.models import FeatureToggle
from app.zeus.repos.feature_toggles import FeatureToggleRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToggleRecord:
    """Detached snapshot of one feature toggle and its group whitelist."""

    feature_key: str
    enabled: bool
    created_by: str
    created_at: datetime
    updated_by: str
    updated_at: datetime
    allowed_groups: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    id: uuid.UUID | None = None
    version: int = 0


class ToggleStore(Protocol):
    def find_by_key(self, feature_key: str) -> ToggleRecord | None: ...

    def upsert(self, record: ToggleRecord) -> ToggleRecord: ...

    def list_records(self, *, limit: int, offset: int = 0) -> tuple[list[ToggleRecord], int]: ...


def to_record(toggle: FeatureToggle) -> ToggleRecord:
    return ToggleRecord(
        id=toggle.id,
        feature_key=toggle.feature_key,
        enabled=bool(toggle.is_enabled),
        description=toggle.description,
        allowed_groups=frozenset(group.group_name for group in toggle.allowed_groups),
        created_by=toggle.created_by,
        created_at=toggle.created_at,
        updated_by=toggle.updated_by,
        updated_at=toggle.updated_at,
        version=toggle.version,
    )


def _store_unavailable(operation: str, feature_key: str | None, exc: Exception) -> AppError:
    logger.exception(
        "Feature toggle store call failed",
        extra={"operation": operation, "feature_key": feature_key},
    )
    return AppError(
        ErrorCatalog.STORE_UNAVAILABLE,
        details={"operation": operation, "type": exc.__class__.__name__},
    )


class SqlAlchemyToggleStore:
    """Relational store; every call runs in its own short session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def find_by_key(self, feature_key: str) -> ToggleRecord | None:
        try:
            with self.session_factory() as db:
                toggle = FeatureToggleRepository(db).get_by_key(feature_key)
                return to_record(toggle) if toggle is not None else None
        except SQLAlchemyError as exc:
            raise _store_unavailable("find_by_key", feature_key, exc) from exc

    def list_records(self, *, limit: int, offset: int = 0) -> tuple[list[ToggleRecord], int]:
        try:
            with self.session_factory() as db:
                rows, total = FeatureToggleRepository(db).list_page(limit=limit, offset=offset)
                return [to_record(row) for row in rows], total
        except SQLAlchemyError as exc:
            raise _store_unavailable("list_records", None, exc) from exc

    def upsert(self, record: ToggleRecord) -> ToggleRecord:
        """Write the record and its whitelist in one transaction.

        ``record.version`` is the version the caller read: 0 means the caller
        saw no record. Any mismatch with the stored row raises
        CONCURRENT_MODIFICATION and nothing is written.
        """
        with self.session_factory() as db:
            repo = FeatureToggleRepository(db)
            try:
                toggle = repo.get_by_key(record.feature_key, for_update=True)
                if toggle is None:
                    if record.version:
                        raise _conflict(record, current_version=None)
                    toggle = repo.add(
                        FeatureToggle(
                            id=record.id or uuid.uuid4(),
                            feature_key=record.feature_key,
                            created_by=record.created_by,
                            created_at=record.created_at,
                        )
                    )
                elif toggle.version != record.version:
                    raise _conflict(record, current_version=toggle.version)

                toggle.is_enabled = record.enabled
                toggle.description = record.description
                toggle.updated_by = record.updated_by
                toggle.updated_at = record.updated_at
                repo.replace_groups(toggle, record.allowed_groups)
                db.flush()
                stored = to_record(toggle)
                db.commit()
            except AppError:
                db.rollback()
                raise
            except (IntegrityError, StaleDataError) as exc:
                db.rollback()
                raise _conflict(record, current_version=None) from exc
            except OperationalError as exc:
                db.rollback()
                if is_lock_timeout(exc):
                    raise _lock_timeout(record, exc) from exc
                raise _store_unavailable("upsert", record.feature_key, exc) from exc
            except SQLAlchemyError as exc:
                db.rollback()
                raise _store_unavailable("upsert", record.feature_key, exc) from exc
            return stored


def _lock_timeout(record: ToggleRecord, exc: Exception) -> AppError:
    metrics.increment_lock_wait_timeout()
    logger.warning(
        "Feature toggle write timed out waiting for a lock",
        extra={"feature_key": record.feature_key},
    )
    return AppError(
        ErrorCatalog.LOCK_TIMEOUT,
        details={"feature_key": record.feature_key, "type": exc.__class__.__name__},
    )


def _conflict(record: ToggleRecord, *, current_version: int | None) -> AppError:
    return AppError(
        ErrorCatalog.CONCURRENT_MODIFICATION,
        details={
            "feature_key": record.feature_key,
            "expected_version": record.version,
            "current_version": current_version,
        },
    )
