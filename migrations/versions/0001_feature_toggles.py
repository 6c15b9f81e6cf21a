"""feature toggles

Revision ID: 0001_feature_toggles
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_feature_toggles"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "feature_toggles",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("feature_key", sa.String(length=50), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("create_time", sa.DateTime(), nullable=True, server_default=sa.func.current_timestamp()),
        sa.Column("updated_by", sa.String(length=255), nullable=True),
        sa.Column("update_time", sa.DateTime(), nullable=True, server_default=sa.func.current_timestamp()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("feature_key", name="uk_feature_key"),
    )
    op.create_table(
        "feature_allowed_groups",
        sa.Column("feature_toggle_id", GUID(), nullable=False),
        sa.Column("group_name", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["feature_toggle_id"],
            ["feature_toggles.id"],
            name="fk_feature_groups_toggle",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("feature_toggle_id", "group_name"),
    )


def downgrade() -> None:
    op.drop_table("feature_allowed_groups")
    op.drop_table("feature_toggles")
