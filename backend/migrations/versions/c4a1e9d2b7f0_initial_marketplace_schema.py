from alembic import op
import sqlalchemy as sa

revision = 'c4a1e9d2b7f0'
down_revision = None
branch_labels = None
depends_on = None


def _now(bind):
    return sa.text("CURRENT_TIMESTAMP") if bind.dialect.name == "sqlite" else sa.text("now()")


def upgrade():
    bind = op.get_bind()

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("mobile", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="buyer"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_mobile", "users", ["mobile"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("delisted_at", sa.DateTime(), nullable=True),
        sa.Column("delist_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
    )
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_seller_id", "products", ["seller_id"])
    op.create_index("ix_products_status", "products", ["status"])
    op.create_index("ix_products_is_available", "products", ["is_available"])

    op.create_table(
        "product_modifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("requested_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("images_json", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("requested_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_product_modifications_product_id", "product_modifications", ["product_id"])
    op.create_index("ix_product_modifications_status", "product_modifications", ["status"])

    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("counter_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("counter_message", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
    )
    for col in ("product_id", "buyer_id", "seller_id", "status"):
        op.create_index(f"ix_offers_{col}", "offers", [col])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("offer_id", sa.Integer(), sa.ForeignKey("offers.id"), nullable=True),
        sa.Column("final_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("buyer_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("seller_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="placed"),
        sa.Column("delivery_address", sa.Text(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
    )
    for col in ("buyer_id", "seller_id", "product_id", "status"):
        op.create_index(f"ix_orders_{col}", "orders", [col])

    op.create_table(
        "order_transitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("from_status", sa.String(length=24), nullable=False, server_default=""),
        sa.Column("to_status", sa.String(length=24), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(length=240), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
    )
    op.create_index("ix_order_transitions_order_id", "order_transitions", ["order_id"])

    op.create_table(
        "payment_confirmations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("gateway_order_id", sa.String(length=64), nullable=False),
        sa.Column("payment_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.UniqueConstraint("payment_id", name="uq_payment_confirmations_payment_id"),
    )
    op.create_index("ix_payment_confirmations_order_id", "payment_confirmations", ["order_id"])
    op.create_index("ix_payment_confirmations_gateway_order_id", "payment_confirmations", ["gateway_order_id"])

    op.create_table(
        "returns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("requested_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("return_type", sa.String(length=16), nullable=False),
        sa.Column("is_faulty", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="requested"),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("refund_id", sa.String(length=64), nullable=True),
        sa.Column("decision_note", sa.Text(), nullable=True),
        sa.Column("requested_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_returns_order_id", "returns", ["order_id"])
    op.create_index("ix_returns_status", "returns", ["status"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("audience_role", sa.String(length=16), nullable=True),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=48), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.CheckConstraint("user_id IS NOT NULL OR audience_role IS NOT NULL", name="ck_notifications_recipient"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_audience_role", "notifications", ["audience_role"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "ratings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("rater_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rated_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        sa.UniqueConstraint("order_id", "rater_id", name="uq_ratings_order_rater"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
        sa.CheckConstraint("rater_id <> rated_id", name="ck_ratings_distinct_parties"),
    )
    op.create_index("ix_ratings_order_id", "ratings", ["order_id"])
    op.create_index("ix_ratings_rated_id", "ratings", ["rated_id"])


def downgrade():
    for table in (
        "ratings",
        "notifications",
        "returns",
        "payment_confirmations",
        "order_transitions",
        "orders",
        "offers",
        "product_modifications",
        "products",
        "users",
    ):
        op.drop_table(table)
