"""Initial quote schema: configurations, quotes, payment ledger, sequence counters

Revision ID: 20251020_initial_quote
Revises:
Create Date: 2025-10-20 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20251020_initial_quote"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "product_configurations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("product_type", sa.String(length=32), nullable=False),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column("include_vat", sa.Boolean(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("vat_rate", sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column("subtotal", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("vat_amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("total", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_product_configurations"),
    )
    with op.batch_alter_table("product_configurations", schema=None) as batch_op:
        batch_op.create_index("ix_product_configurations_product_type", ["product_type"], unique=False)

    op.create_table(
        "quote_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("configuration_id", sa.String(length=36), nullable=False),
        sa.Column("quote_number", sa.String(length=32), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone_prefix", sa.String(length=8), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("address_line1", sa.String(length=255), nullable=True),
        sa.Column("address_line2", sa.String(length=255), nullable=True),
        sa.Column("town", sa.String(length=100), nullable=True),
        sa.Column("county", sa.String(length=100), nullable=True),
        sa.Column("eircode", sa.String(length=8), nullable=False),
        sa.Column("desired_install_timeframe", sa.String(length=64), nullable=True),
        sa.Column("payment_status", sa.String(length=16), nullable=False),
        sa.Column("total_paid", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("expected_installments", sa.Integer(), nullable=True),
        sa.Column("last_payment_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["configuration_id"], ["product_configurations.id"],
            name="fk_quote_requests_configuration_id_product_configurations",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_quote_requests"),
        sa.UniqueConstraint("quote_number", name="uq_quote_requests_quote_number"),
    )
    with op.batch_alter_table("quote_requests", schema=None) as batch_op:
        batch_op.create_index("ix_quote_requests_configuration_id", ["configuration_id"], unique=False)
        batch_op.create_index("ix_quote_requests_email", ["email"], unique=False)
        batch_op.create_index("ix_quote_requests_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_quote_requests_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_quote_requests_status_expires", ["payment_status", "expires_at"], unique=False)

    op.create_table(
        "payment_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("quote_id", sa.String(length=36), nullable=False),
        sa.Column("payment_type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.String(length=100), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["quote_id"], ["quote_requests.id"],
            name="fk_payment_history_quote_id_quote_requests",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payment_history"),
    )
    with op.batch_alter_table("payment_history", schema=None) as batch_op:
        batch_op.create_index("ix_payment_history_quote_id", ["quote_id"], unique=False)
        batch_op.create_index("ix_payment_history_quote_timestamp", ["quote_id", "timestamp"], unique=False)

    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("counter_key", sa.String(length=64), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_sequence_counters"),
        sa.UniqueConstraint("counter_key", name="uq_sequence_counters_key"),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table("sequence_counters")

    with op.batch_alter_table("payment_history", schema=None) as batch_op:
        batch_op.drop_index("ix_payment_history_quote_timestamp")
        batch_op.drop_index("ix_payment_history_quote_id")
    op.drop_table("payment_history")

    with op.batch_alter_table("quote_requests", schema=None) as batch_op:
        batch_op.drop_index("ix_quote_requests_status_expires")
        batch_op.drop_index("ix_quote_requests_created_at")
        batch_op.drop_index("ix_quote_requests_payment_status")
        batch_op.drop_index("ix_quote_requests_email")
        batch_op.drop_index("ix_quote_requests_configuration_id")
    op.drop_table("quote_requests")

    with op.batch_alter_table("product_configurations", schema=None) as batch_op:
        batch_op.drop_index("ix_product_configurations_product_type")
    op.drop_table("product_configurations")
