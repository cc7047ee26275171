"""initial schema: countries and app_meta

Revision ID: 20251020_000001
Revises:
Create Date: 2025-10-20 00:00:01.000000

"""
from typing import Sequence, Union

from alembic import op  # type: ignore[attr-defined]
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20251020_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "countries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("capital", sa.String(128), nullable=True),
        sa.Column("region", sa.String(64), nullable=True),
        sa.Column("population", sa.BigInteger().with_variant(sa.Integer(), "sqlite"), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=True),
        sa.Column("exchange_rate", sa.Float(), nullable=True),
        sa.Column("estimated_gdp", sa.Float(), nullable=True),
        sa.Column("flag_url", sa.String(256), nullable=True),
        sa.Column("last_refreshed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("name", name="ux_countries_name"),
    )
    op.create_index(op.f("ix_countries_id"), "countries", ["id"], unique=False)
    op.create_index(op.f("ix_countries_region"), "countries", ["region"], unique=False)
    op.create_index(op.f("ix_countries_currency_code"), "countries", ["currency_code"], unique=False)
    op.create_index(op.f("ix_countries_estimated_gdp"), "countries", ["estimated_gdp"], unique=False)

    op.create_table(
        "app_meta",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.String(512), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("app_meta")
    op.drop_index(op.f("ix_countries_estimated_gdp"), table_name="countries")
    op.drop_index(op.f("ix_countries_currency_code"), table_name="countries")
    op.drop_index(op.f("ix_countries_region"), table_name="countries")
    op.drop_index(op.f("ix_countries_id"), table_name="countries")
    op.drop_table("countries")
