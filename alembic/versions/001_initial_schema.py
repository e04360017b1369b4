"""Initial schema: users, catalogs, rate adjustments, quotes, invoice requests, audit log.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001_initial_schema"
down_revision = None

LIFECYCLE = postgresql.ENUM("active", "inactive", "deleted", name="lifecycle_state", create_type=False)
NOT_DELETED = sa.text("lifecycle <> 'deleted'")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _lifecycle() -> sa.Column:
    return sa.Column("lifecycle", LIFECYCLE, server_default="active", nullable=False, index=True)


def upgrade() -> None:
    LIFECYCLE.create(op.get_bind(), checkfirst=True)

    # ================================================================
    # 1. Departments and users
    # ================================================================
    op.create_table(
        "departments",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        _lifecycle(),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("password_hash", sa.Text, nullable=True),
        sa.Column(
            "role",
            sa.Enum(
                "superadmin", "admin", "client", "department_manager", "employee", "driver", "guest",
                name="user_role",
            ),
            server_default="employee",
            nullable=False,
        ),
        sa.Column(
            "department_id", sa.BigInteger, sa.ForeignKey("departments.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        _lifecycle(),
        *_timestamps(),
    )

    # ================================================================
    # 2. Catalogs
    # ================================================================
    op.create_table(
        "clients",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("rfc", sa.String(13), nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        _lifecycle(),
        *_timestamps(),
    )

    op.create_table(
        "pois",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False, index=True),
        sa.Column(
            "service_type",
            sa.Enum("airport", "local", "city", name="poi_service_type"),
            server_default="local",
            nullable=False,
        ),
        sa.Column("address", sa.Text, nullable=True),
        _lifecycle(),
        *_timestamps(),
    )

    op.create_table(
        "vehicle_types",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("icon", sa.String(50), server_default="car", nullable=False),
        sa.Column("default_capacity", sa.Integer, server_default="4", nullable=False),
        sa.Column("sort_order", sa.Integer, server_default="0", nullable=False),
        _lifecycle(),
        *_timestamps(),
    )
    op.create_index("uq_vehicle_types_code", "vehicle_types", ["code"], unique=True, postgresql_where=NOT_DELETED)

    op.create_table(
        "rates",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), server_default="0", nullable=False),
        sa.Column("color", sa.String(7), server_default="#6366F1", nullable=False),
        _lifecycle(),
        *_timestamps(),
    )
    op.create_index("uq_rates_name", "rates", ["name"], unique=True, postgresql_where=NOT_DELETED)

    op.create_table(
        "vehicles",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("brand", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("license_plate", sa.String(20), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("color", sa.String(50), nullable=True),
        sa.Column("vehicle_type_id", sa.BigInteger, sa.ForeignKey("vehicle_types.id"), nullable=False, index=True),
        sa.Column("rate_id", sa.BigInteger, sa.ForeignKey("rates.id"), nullable=True, index=True),
        sa.Column(
            "maintenance_status",
            sa.Enum("operational", "maintenance", "repair", "out_of_service", name="vehicle_maintenance_status"),
            server_default="operational",
            nullable=False,
        ),
        sa.Column("insurance_expiry", sa.Date, nullable=True),
        _lifecycle(),
        *_timestamps(),
    )
    op.create_index(
        "uq_vehicles_license_plate", "vehicles", ["license_plate"], unique=True, postgresql_where=NOT_DELETED
    )

    op.create_table(
        "services",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("origin_poi_id", sa.BigInteger, sa.ForeignKey("pois.id"), nullable=True, index=True),
        sa.Column("destination_poi_id", sa.BigInteger, sa.ForeignKey("pois.id"), nullable=False, index=True),
        sa.Column("vehicle_type_id", sa.BigInteger, sa.ForeignKey("vehicle_types.id"), nullable=False, index=True),
        sa.Column("rate_id", sa.BigInteger, sa.ForeignKey("rates.id"), nullable=False, index=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_round_trip", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        _lifecycle(),
        *_timestamps(),
    )
    # Routes without an origin are NULL here and are kept unique by the service layer
    op.create_index(
        "uq_services_route",
        "services",
        ["origin_poi_id", "destination_poi_id", "vehicle_type_id", "rate_id"],
        unique=True,
        postgresql_where=NOT_DELETED,
    )

    op.create_table(
        "experiences",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "type",
            sa.Enum("Experience", "Provider", name="experience_type"),
            server_default="Experience",
            nullable=False,
        ),
        sa.Column("cost", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("duration_hours", sa.Numeric(5, 2), nullable=True),
        sa.Column("min_people", sa.Integer, nullable=True),
        sa.Column("max_people", sa.Integer, nullable=True),
        sa.Column("included_experience_ids", sa.JSON, server_default="[]", nullable=False),
        _lifecycle(),
        *_timestamps(),
    )

    # ================================================================
    # 3. Rate adjustments (one current row per kind)
    # ================================================================
    op.create_table(
        "rate_adjustments",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "kind",
            sa.Enum("exchange_rate", "inflation", "agency", "transfer", name="rate_adjustment_kind"),
            nullable=False,
            index=True,
        ),
        sa.Column("value", sa.Numeric(10, 4), nullable=False),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("effective_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        _lifecycle(),
        *_timestamps(),
    )
    op.create_index(
        "uq_rate_adjustments_current_kind",
        "rate_adjustments",
        ["kind"],
        unique=True,
        postgresql_where=sa.text("lifecycle = 'active'"),
    )

    # ================================================================
    # 4. Quotes and invoice requests
    # ================================================================
    op.create_table(
        "quotes",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("folio", sa.String(20), unique=True, nullable=False),
        sa.Column(
            "status",
            sa.Enum("requested", "hold", "scheduled", "rejected", name="quote_status"),
            server_default="requested",
            nullable=False,
            index=True,
        ),
        sa.Column("client_id", sa.BigInteger, sa.ForeignKey("clients.id"), nullable=True, index=True),
        sa.Column("rate_id", sa.BigInteger, sa.ForeignKey("rates.id"), nullable=True),
        sa.Column("event_type", sa.String(100), nullable=True),
        sa.Column("number_of_people", sa.Integer, server_default="1", nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(50), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("service_items", sa.JSON, nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("invoice_requested", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("invoice_request_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "invoice_requested_by_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_by_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True, index=True,
        ),
        _lifecycle(),
        *_timestamps(),
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("quote_id", sa.BigInteger, sa.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", "cancelled", name="invoice_request_status"),
            server_default="pending",
            nullable=False,
            index=True,
        ),
        sa.Column(
            "requested_by_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("request_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "processed_by_id", sa.Uuid(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("process_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_number", sa.String(50), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        *_timestamps(),
    )
    # At most one pending request per quote
    op.create_index(
        "uq_invoices_pending_quote",
        "invoices",
        ["quote_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    # ================================================================
    # 5. Audit log
    # ================================================================
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=True, index=True),
        sa.Column("user_role", sa.String(50), nullable=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("old_values_json", sa.JSON, nullable=True),
        sa.Column("new_values_json", sa.JSON, nullable=True),
        sa.Column("context", sa.String(255), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_index("uq_invoices_pending_quote", table_name="invoices")
    op.drop_table("invoices")
    op.drop_table("quotes")
    op.drop_index("uq_rate_adjustments_current_kind", table_name="rate_adjustments")
    op.drop_table("rate_adjustments")
    op.drop_table("experiences")
    op.drop_index("uq_services_route", table_name="services")
    op.drop_table("services")
    op.drop_index("uq_vehicles_license_plate", table_name="vehicles")
    op.drop_table("vehicles")
    op.drop_index("uq_rates_name", table_name="rates")
    op.drop_table("rates")
    op.drop_index("uq_vehicle_types_code", table_name="vehicle_types")
    op.drop_table("vehicle_types")
    op.drop_table("pois")
    op.drop_table("clients")
    op.drop_table("users")
    op.drop_table("departments")

    bind = op.get_bind()
    for enum_name in (
        "invoice_request_status",
        "quote_status",
        "rate_adjustment_kind",
        "experience_type",
        "vehicle_maintenance_status",
        "poi_service_type",
        "user_role",
        "lifecycle_state",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
