"""create_tokens

Tokens table keyed by both mint and bonding curve address.

Revision ID: a7c1e2f3b4d5
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "a7c1e2f3b4d5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bonding_curve_address", sa.String(64), nullable=False),
        sa.Column("token_address", sa.String(64), nullable=False),
        sa.Column("complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("creator", sa.String(64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("symbol", sa.Text(), nullable=False),
        sa.Column("uri", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("bonding_curve_address"),
        sa.UniqueConstraint("token_address"),
    )
    op.create_index("idx_tokens_symbol", "tokens", ["symbol"])
    op.create_index("idx_tokens_name", "tokens", ["name"])
    op.create_index("idx_tokens_complete", "tokens", ["complete"])
    op.create_index("idx_tokens_creator", "tokens", ["creator"])
    op.create_index("idx_tokens_created_at", "tokens", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_tokens_created_at", table_name="tokens")
    op.drop_index("idx_tokens_creator", table_name="tokens")
    op.drop_index("idx_tokens_complete", table_name="tokens")
    op.drop_index("idx_tokens_name", table_name="tokens")
    op.drop_index("idx_tokens_symbol", table_name="tokens")
    op.drop_table("tokens")
