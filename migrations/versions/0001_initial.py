"""Initial schema - drivers, vehicles, bookings"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "drivers",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        sa.Column("queue_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("chat_channel_id", sa.String(64), unique=True, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_drivers_queue", "drivers", ["active", "status", "queue_order"])
    op.create_index("idx_drivers_status", "drivers", ["status"])

    op.create_table(
        "vehicles",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("plate_number", sa.String(32), unique=True, nullable=False),
        sa.Column("brand", sa.String(64), nullable=True),
        sa.Column("model", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("request_code", sa.String(32), unique=True, nullable=False),
        sa.Column("requester_name", sa.String(255), nullable=False),
        sa.Column("purpose", sa.Text, nullable=True),
        sa.Column("destination", sa.String(255), nullable=True),
        sa.Column("passenger_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vehicle_id", sa.String, sa.ForeignKey("vehicles.id"), nullable=True),
        sa.Column("driver_id", sa.String, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="REQUESTED"),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("driver_accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("start_mileage", sa.Integer, nullable=True),
        sa.Column("end_mileage", sa.Integer, nullable=True),
        sa.Column("distance", sa.Integer, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_driver", "bookings", ["driver_id"])
    op.create_index("idx_bookings_assigned", "bookings", ["assigned_at"])
    op.create_index("idx_bookings_start", "bookings", ["start_at"])
    op.create_index("idx_bookings_created", "bookings", ["created_at"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("vehicles")
    op.drop_table("drivers")
