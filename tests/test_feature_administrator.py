from dataclasses import replace
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.zeus.core.error_catalog import AppError, ErrorCatalog
from app.zeus.db.models import FeatureAllowedGroup, FeatureToggle
from app.zeus.repos.feature_toggles import FeatureToggleRepository
from app.zeus.services.feature_toggles import FeatureAdministrator, FeatureEvaluator
from app.zeus.services.toggle_cache import ToggleCache
from app.zeus.services.toggle_store import SqlAlchemyToggleStore
from tests.toggle_helpers import FakeClock, RecordingStore


class StepClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, 0)

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture()
def store(session_factory):
    return RecordingStore(SqlAlchemyToggleStore(session_factory))


@pytest.fixture()
def evaluator(store):
    return FeatureEvaluator(store, ToggleCache(clock=FakeClock()))


@pytest.fixture()
def administrator(store, evaluator):
    return FeatureAdministrator(store, evaluator, clock=StepClock())


def test_create_sets_audit_fields(administrator):
    record = administrator.update_feature("PAY", enabled=True, groups=["BETA", "BETA"], operator="sys")

    assert record.id is not None
    assert record.feature_key == "PAY"
    assert record.enabled is True
    assert record.allowed_groups == frozenset({"BETA"})
    assert record.created_by == record.updated_by == "sys"
    assert record.created_at == record.updated_at == datetime(2026, 3, 1, 12, 0, 0)
    assert record.version == 1


def test_update_mutates_in_place_and_keeps_creation_audit(administrator):
    created = administrator.update_feature("PAY", enabled=True, groups=[], operator="sys")
    updated = administrator.update_feature("PAY", enabled=False, groups=["GA"], operator="ops")

    assert updated.id == created.id
    assert updated.created_by == "sys"
    assert updated.created_at == created.created_at
    assert updated.updated_by == "ops"
    assert updated.updated_at > created.updated_at
    assert updated.enabled is False
    assert updated.allowed_groups == frozenset({"GA"})
    assert updated.version == created.version + 1


def test_groups_replaced_and_cleared(administrator, db_session):
    administrator.update_feature("PAY", enabled=True, groups=["A", "B"], operator="sys")
    administrator.update_feature("PAY", enabled=True, groups=["B", "C"], operator="sys")
    assert administrator.get_feature("PAY").allowed_groups == frozenset({"B", "C"})

    record = administrator.update_feature("PAY", enabled=True, groups=None, operator="sys")

    assert record.allowed_groups == frozenset()
    rows = db_session.execute(select(FeatureAllowedGroup)).scalars().all()
    assert rows == []


def test_identical_update_is_idempotent(administrator, evaluator, store):
    first = administrator.update_feature("PAY", enabled=True, groups=["BETA"], operator="sys")
    second = administrator.update_feature("PAY", enabled=True, groups=["BETA"], operator="sys")

    assert second == first
    assert store.upsert_calls == ["PAY"]
    assert evaluator.is_allowed("PAY", False, ["BETA"]) is True


def test_unchanged_update_drops_stale_cached_value(session_factory):
    sql_store = SqlAlchemyToggleStore(session_factory)
    local_evaluator = FeatureEvaluator(sql_store, ToggleCache(clock=FakeClock()))
    local = FeatureAdministrator(sql_store, local_evaluator)
    remote = FeatureAdministrator(sql_store, FeatureEvaluator(sql_store))

    local.update_feature("PAY", enabled=True, groups=[], operator="sys")
    assert local_evaluator.is_allowed("PAY") is True

    remote.update_feature("PAY", enabled=False, groups=[], operator="sys")
    assert local_evaluator.is_allowed("PAY") is True

    record = local.update_feature("PAY", enabled=False, groups=[], operator="sys")

    assert record.version == 2
    assert local_evaluator.is_allowed("PAY") is False


def test_description_kept_unless_passed(administrator):
    administrator.update_feature("PAY", enabled=True, groups=[], operator="sys", description="Payments v2")
    record = administrator.update_feature("PAY", enabled=False, groups=[], operator="sys")
    assert record.description == "Payments v2"

    record = administrator.update_feature("PAY", enabled=False, groups=[], operator="sys", description=None)
    assert record.description is None


@pytest.mark.parametrize(
    ("feature_key", "groups", "operator"),
    [
        ("", [], "sys"),
        ("   ", [], "sys"),
        ("K" * 51, [], "sys"),
        ("PAY", ["BETA", " "], "sys"),
        ("PAY", [], ""),
    ],
)
def test_validation_rejected_before_store_access(administrator, store, feature_key, groups, operator):
    with pytest.raises(AppError) as exc_info:
        administrator.update_feature(feature_key, enabled=True, groups=groups, operator=operator)

    assert exc_info.value.error.code == "VALIDATION_ERROR"
    assert store.find_calls == []
    assert store.upsert_calls == []


def test_failed_write_keeps_cache_and_prior_record(administrator, evaluator, store):
    administrator.update_feature("PAY", enabled=True, groups=[], operator="sys")
    assert evaluator.is_allowed("PAY") is True
    store.find_calls.clear()

    store.fail_upsert = AppError(ErrorCatalog.STORE_UNAVAILABLE)
    with pytest.raises(AppError) as exc_info:
        administrator.update_feature("PAY", enabled=False, groups=[], operator="sys")
    assert exc_info.value.error.code == "STORE_UNAVAILABLE"

    assert evaluator.cache.size == 1
    assert evaluator.is_allowed("PAY") is True
    assert store.find_calls == ["PAY"]
    assert administrator.get_feature("PAY").enabled is True


def test_lock_timeout_on_write_is_reported_and_rolled_back(administrator, evaluator, monkeypatch):
    administrator.update_feature("PAY", enabled=True, groups=["BETA"], operator="sys")
    assert evaluator.is_allowed("PAY", False, ["BETA"]) is True

    def locked(self, toggle, names):
        raise OperationalError("UPDATE feature_toggles", {}, Exception("database is locked"))

    monkeypatch.setattr(FeatureToggleRepository, "replace_groups", locked)
    with pytest.raises(AppError) as exc_info:
        administrator.update_feature("PAY", enabled=False, groups=[], operator="ops")

    assert exc_info.value.error is ErrorCatalog.LOCK_TIMEOUT
    assert exc_info.value.details["feature_key"] == "PAY"
    assert evaluator.is_allowed("PAY", False, ["BETA"]) is True
    stored = administrator.get_feature("PAY")
    assert stored.enabled is True
    assert stored.updated_by == "sys"
    assert stored.version == 1


def test_other_operational_errors_on_write_are_store_outages(administrator, monkeypatch):
    def broken(self, toggle, names):
        raise OperationalError("UPDATE feature_toggles", {}, Exception("disk I/O error"))

    monkeypatch.setattr(FeatureToggleRepository, "replace_groups", broken)
    with pytest.raises(AppError) as exc_info:
        administrator.update_feature("PAY", enabled=True, groups=["BETA"], operator="sys")

    assert exc_info.value.error is ErrorCatalog.STORE_UNAVAILABLE
    assert exc_info.value.details == {"operation": "upsert", "type": "OperationalError"}


def test_stale_version_is_rejected(session_factory):
    sql_store = SqlAlchemyToggleStore(session_factory)
    administrator = FeatureAdministrator(sql_store, FeatureEvaluator(sql_store))
    created = administrator.update_feature("PAY", enabled=True, groups=[], operator="sys")
    administrator.update_feature("PAY", enabled=False, groups=[], operator="ops")

    with pytest.raises(AppError) as exc_info:
        sql_store.upsert(replace(created, enabled=True, updated_by="late"))

    assert exc_info.value.error.code == "CONCURRENT_MODIFICATION"
    assert exc_info.value.details["current_version"] == 2
    assert sql_store.find_by_key("PAY").enabled is False


def test_concurrent_create_is_rejected(session_factory):
    sql_store = SqlAlchemyToggleStore(session_factory)
    administrator = FeatureAdministrator(sql_store, FeatureEvaluator(sql_store))
    first = administrator.update_feature("PAY", enabled=True, groups=[], operator="sys")

    with pytest.raises(AppError) as exc_info:
        sql_store.upsert(replace(first, id=None, version=0, created_by="other"))

    assert exc_info.value.error.code == "CONCURRENT_MODIFICATION"
    assert sql_store.find_by_key("PAY").created_by == "sys"


def test_record_and_whitelist_persisted_together(administrator, db_session):
    administrator.update_feature("PAY", enabled=True, groups=["A", "B"], operator="sys")

    toggle = db_session.execute(select(FeatureToggle).where(FeatureToggle.feature_key == "PAY")).scalar_one()
    assert toggle.is_enabled is True
    assert sorted(group.group_name for group in toggle.allowed_groups) == ["A", "B"]


def test_get_feature_not_found(administrator):
    with pytest.raises(AppError) as exc_info:
        administrator.get_feature("MISSING")
    assert exc_info.value.error.code == "FEATURE_NOT_FOUND"


def test_list_features_pages_by_key(administrator):
    for key in ("C", "A", "B"):
        administrator.update_feature(key, enabled=True, groups=[], operator="sys")

    records, total = administrator.list_features(limit=2, offset=0)

    assert total == 3
    assert [record.feature_key for record in records] == ["A", "B"]
