from sqlalchemy import func, select

from app.zeus.db.models import FeatureAllowedGroup, FeatureToggle


class FeatureToggleRepository:
    def __init__(self, db):
        self.db = db

    def get_by_key(self, feature_key: str, *, for_update: bool = False):
        stmt = select(FeatureToggle).where(FeatureToggle.feature_key == feature_key)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def list_page(self, *, limit: int, offset: int = 0):
        stmt = select(FeatureToggle).order_by(FeatureToggle.feature_key.asc()).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(FeatureToggle)
        rows = self.db.execute(stmt).scalars().all()
        total = self.db.execute(count_stmt).scalar_one()
        return rows, total

    def add(self, toggle: FeatureToggle) -> FeatureToggle:
        self.db.add(toggle)
        return toggle

    def replace_groups(self, toggle: FeatureToggle, group_names) -> None:
        wanted = set(group_names)
        current = {group.group_name: group for group in toggle.allowed_groups}
        for name, group in current.items():
            if name not in wanted:
                toggle.allowed_groups.remove(group)
        for name in sorted(wanted - current.keys()):
            toggle.allowed_groups.append(FeatureAllowedGroup(group_name=name))
