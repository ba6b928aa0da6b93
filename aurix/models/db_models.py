# aurix/models/db_models.py
"""
SQLAlchemy table definitions for the call event log, clinician escalations and
the demo business records (customers, orders, prescriptions, billing).
The module imports the shared `metadata` from aurix.db.db so `connect_db()` can create tables.
"""
import sqlalchemy as sa
from aurix.db.db import get_metadata

metadata = get_metadata()

# Append-only call event log. Ordering is by `id`, never by `created_at`.
call_events = sa.Table(
    "call_events",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("call_sid", sa.String(length=128), index=True, nullable=False),
    sa.Column("customer_id", sa.String(length=64), nullable=True),
    sa.Column("event_type", sa.String(length=64), nullable=False),
    sa.Column("event_data_json", sa.Text, nullable=False),  # payload stored as JSON string
    sa.Column("created_at", sa.String(length=64), nullable=False),
)

clinician_escalations = sa.Table(
    "clinician_escalations",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("call_sid", sa.String(length=128), index=True, nullable=False),
    sa.Column("customer_id", sa.String(length=64), nullable=True),
    sa.Column("inquiry_type", sa.String(length=64), nullable=True),
    sa.Column("inquiry_text", sa.Text, nullable=True),
    sa.Column("blocked_reason", sa.Text, nullable=True),
    sa.Column("escalation_status", sa.String(length=64), nullable=False),
    sa.Column("callback_requested", sa.Boolean, nullable=False, default=False),
    sa.Column("callback_scheduled_at", sa.String(length=64), nullable=True),
    sa.Column("agent_response", sa.Text, nullable=True),
    sa.Column("created_at", sa.String(length=64), nullable=False),
    sa.Column("resolved_at", sa.String(length=64), nullable=True),
    sa.Column("resolved_by", sa.String(length=128), nullable=True),
)

customers = sa.Table(
    "customers",
    metadata,
    sa.Column("customer_id", sa.String(length=64), primary_key=True),
    sa.Column("name", sa.String(length=256), nullable=False),
    sa.Column("email", sa.String(length=256), nullable=True),
    sa.Column("phone", sa.String(length=32), index=True, nullable=True),
    sa.Column("security_last4_digits", sa.String(length=4), nullable=True),
    sa.Column("vip_tier", sa.String(length=32), nullable=True),
    sa.Column("customer_ltv", sa.Float, nullable=True),
    sa.Column("order_count", sa.Integer, nullable=True),
    sa.Column("discreet_packaging", sa.Boolean, nullable=True),
    sa.Column("account_manager", sa.String(length=128), nullable=True),
    sa.Column("notes", sa.Text, nullable=True),
)

prescriptions = sa.Table(
    "prescriptions",
    metadata,
    sa.Column("prescription_id", sa.String(length=64), primary_key=True),
    sa.Column("customer_id", sa.String(length=64), index=True, nullable=False),
    sa.Column("product_name", sa.String(length=256), nullable=False),
    sa.Column("prescription_status", sa.String(length=32), nullable=True),
    sa.Column("refills_remaining", sa.Integer, nullable=False, default=0),
)

orders = sa.Table(
    "orders",
    metadata,
    sa.Column("order_id", sa.String(length=64), primary_key=True),
    sa.Column("order_number", sa.String(length=64), index=True, nullable=True),
    sa.Column("customer_id", sa.String(length=64), index=True, nullable=True),
    sa.Column("prescription_id", sa.String(length=64), nullable=True),
    sa.Column("product_name", sa.String(length=256), nullable=True),
    sa.Column("quantity", sa.Integer, nullable=True),
    sa.Column("order_status", sa.String(length=64), nullable=True),
    sa.Column("order_date", sa.String(length=32), nullable=True),
    sa.Column("estimated_delivery", sa.String(length=32), nullable=True),
    sa.Column("tracking_number", sa.String(length=64), nullable=True),
    sa.Column("delivery_address_type", sa.String(length=32), nullable=True),
    sa.Column("discreet_packaging", sa.Boolean, nullable=True),
    sa.Column("order_total", sa.Float, nullable=True),
    sa.Column("notes", sa.Text, nullable=True),
)

billing = sa.Table(
    "billing",
    metadata,
    sa.Column("customer_id", sa.String(length=64), primary_key=True),
    sa.Column("card_last4", sa.String(length=4), nullable=True),
    sa.Column("billing_status", sa.String(length=32), nullable=True),
    sa.Column("next_billing_date", sa.String(length=32), nullable=True),
)
