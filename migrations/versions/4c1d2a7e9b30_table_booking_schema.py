"""table booking schema with overlap guard

Revision ID: 4c1d2a7e9b30
Revises: 
Create Date: 2025-11-12 09:18:44.512306

"""
from pathlib import Path
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '4c1d2a7e9b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    project_root = Path(__file__).resolve().parents[2]
    sql_dir = project_root / "sql"

    for filename in ("001_extensions.sql", "010_schema.sql"):
        op.execute((sql_dir / filename).read_text())


def downgrade() -> None:
    op.drop_table("event_log", schema="public")
    op.drop_table("waitlist_entry", schema="public")
    op.drop_table("reservation", schema="public")
    op.drop_table("duration_policy", schema="public")
    op.drop_table("hours_exception", schema="public")
    op.drop_table("business_hours", schema="public")
    op.drop_table("venue_table", schema="public")
    op.execute("DROP EXTENSION IF EXISTS btree_gist;")
