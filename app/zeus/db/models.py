import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class FeatureToggle(Base):
    __tablename__ = "feature_toggles"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column("create_time", DateTime, default=datetime.utcnow, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column("update_time", DateTime, default=datetime.utcnow, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    allowed_groups = relationship(
        "FeatureAllowedGroup",
        back_populates="feature_toggle",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("feature_key", name="uk_feature_key"),)
    __mapper_args__ = {"version_id_col": version}


class FeatureAllowedGroup(Base):
    __tablename__ = "feature_allowed_groups"

    feature_toggle_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("feature_toggles.id", ondelete="CASCADE", name="fk_feature_groups_toggle"),
        primary_key=True,
    )
    group_name: Mapped[str] = mapped_column(String(255), primary_key=True)

    feature_toggle = relationship("FeatureToggle", back_populates="allowed_groups")
