from alembic import op
import sqlalchemy as sa

revision = 'e7b3f05a91c2'
down_revision = 'c4a1e9d2b7f0'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    now = sa.text("CURRENT_TIMESTAMP") if bind.dialect.name == "sqlite" else sa.text("now()")
    op.create_table(
        "payment_attempts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=False),
        sa.Column("amount_minor", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="INR"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=now),
        sa.UniqueConstraint("gateway_order_id", name="uq_payment_attempts_gateway_order_id"),
    )
    op.create_index("ix_payment_attempts_order_id", "payment_attempts", ["order_id"])


def downgrade():
    op.drop_index("ix_payment_attempts_order_id", table_name="payment_attempts")
    op.drop_table("payment_attempts")
