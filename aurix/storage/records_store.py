# aurix/storage/records_store.py
"""
Business records (customers, orders, prescriptions, billing) backed by the database.

Lookups raise LookupNotFound when the key does not exist and
DownstreamUnavailable when the database itself fails, so workflows can tell
"tell the caller we could not find it" apart from "apologise and degrade".

Exposes:
 - get_customer(customer_id), get_customer_by_phone(phone), find_customers_by_name(name)
 - get_order(order_id, customer_id=None), get_order_by_number(order_ref)
 - get_order_details(order_id) -> order with "customer"/"prescription" nested
 - get_prescription(prescription_id), get_billing(customer_id)
 - create_order(values), decrement_refills(prescription_id), update_order_address(order_id, address_type)
 - append_customer_note(customer_id, note)
 - seed_demo_data()
"""
import datetime
import logging
from typing import Any, Dict, List, Optional

import sqlalchemy as sa

from aurix.core.errors import DownstreamUnavailable, LookupNotFound
from aurix.db.db import get_database
from aurix.models.db_models import billing, customers, orders, prescriptions

logger = logging.getLogger("aurix.storage.records")


async def _fetch_one(query, entity: str, key: Optional[str]) -> Dict[str, Any]:
    db = get_database()
    try:
        row = await db.fetch_one(query)
    except Exception as exc:
        logger.exception("Lookup of %s %s failed", entity, key)
        raise DownstreamUnavailable("records", str(exc)) from exc
    if not row:
        raise LookupNotFound(entity, key)
    return dict(row._mapping)


async def _execute(query, what: str) -> Any:
    db = get_database()
    try:
        return await db.execute(query)
    except Exception as exc:
        logger.exception("Failed to %s", what)
        raise DownstreamUnavailable("records", str(exc)) from exc


async def get_customer(customer_id: str) -> Dict[str, Any]:
    return await _fetch_one(customers.select().where(customers.c.customer_id == customer_id), "customer", customer_id)


async def get_customer_by_phone(phone: Optional[str]) -> Dict[str, Any]:
    if not phone:
        raise LookupNotFound("customer", phone)
    normalized = phone.replace(" ", "")
    return await _fetch_one(customers.select().where(customers.c.phone == normalized), "customer", phone)


async def find_customers_by_name(name: str) -> List[Dict[str, Any]]:
    db = get_database()
    q = customers.select().where(customers.c.name.ilike(f"%{name}%"))
    try:
        rows = await db.fetch_all(q)
    except Exception as exc:
        raise DownstreamUnavailable("records", str(exc)) from exc
    return [dict(r._mapping) for r in rows]


async def get_order(order_id: str, customer_id: Optional[str] = None) -> Dict[str, Any]:
    q = orders.select().where(orders.c.order_id == order_id)
    if customer_id:
        q = q.where(orders.c.customer_id == customer_id)
    return await _fetch_one(q, "order", order_id)


async def get_order_by_number(order_ref: Optional[str]) -> Dict[str, Any]:
    """Accepts either the short order number ("417") or the order id ("ORD_7823")."""
    if not order_ref:
        raise LookupNotFound("order", order_ref)
    ref = str(order_ref).strip().lstrip("#")
    q = orders.select().where(sa.or_(orders.c.order_number == ref, orders.c.order_id == ref))
    return await _fetch_one(q, "order", ref)


async def get_prescription(prescription_id: str) -> Dict[str, Any]:
    q = prescriptions.select().where(prescriptions.c.prescription_id == prescription_id)
    return await _fetch_one(q, "prescription", prescription_id)


async def get_billing(customer_id: str) -> Dict[str, Any]:
    return await _fetch_one(billing.select().where(billing.c.customer_id == customer_id), "billing", customer_id)


async def get_order_details(order_id: str) -> Dict[str, Any]:
    """Order joined with its customer and prescription (missing relations become None)."""
    order = await get_order_by_number(order_id)
    order["customer"] = None
    order["prescription"] = None
    if order.get("customer_id"):
        try:
            order["customer"] = await get_customer(order["customer_id"])
        except LookupNotFound:
            logger.warning("Order %s references missing customer %s", order_id, order["customer_id"])
    if order.get("prescription_id"):
        try:
            order["prescription"] = await get_prescription(order["prescription_id"])
        except LookupNotFound:
            logger.warning("Order %s references missing prescription %s", order_id, order["prescription_id"])
    return order


async def create_order(values: Dict[str, Any]) -> Dict[str, Any]:
    await _execute(orders.insert().values(**values), "create order")
    logger.info("Created order %s for %s", values.get("order_id"), values.get("customer_id"))
    return await get_order(values["order_id"])


async def decrement_refills(prescription_id: str) -> int:
    rx = await get_prescription(prescription_id)
    remaining = max((rx.get("refills_remaining") or 0) - 1, 0)
    q = prescriptions.update().where(prescriptions.c.prescription_id == prescription_id).values(refills_remaining=remaining)
    await _execute(q, "update refills")
    return remaining


async def update_order_address(order_id: str, address_type: str) -> None:
    # privacy-driven changes always keep discreet packaging on
    q = orders.update().where(orders.c.order_id == order_id).values(delivery_address_type=address_type, discreet_packaging=True)
    await _execute(q, "update order address")


async def append_customer_note(customer_id: str, note: str) -> str:
    customer = await get_customer(customer_id)
    entry = f"[{datetime.datetime.now(datetime.timezone.utc).isoformat()}] {note}"
    existing = customer.get("notes") or ""
    updated = f"{existing}\n{entry}" if existing else entry
    q = customers.update().where(customers.c.customer_id == customer_id).values(notes=updated)
    await _execute(q, "update customer notes")
    return updated


DEMO_CUSTOMERS = [
    {
        "customer_id": "CUST_001",
        "name": "Tom Harris",
        "email": "tom.harris@example.com",
        "phone": "+447700900001",
        "security_last4_digits": "4821",
        "vip_tier": "gold",
        "customer_ltv": 1450.0,
        "order_count": 14,
        "discreet_packaging": True,
        "account_manager": "Sarah Collins",
        "notes": None,
    },
    {
        "customer_id": "CUST_002",
        "name": "Priya Shah",
        "email": "priya.shah@example.com",
        "phone": "+447700900002",
        "security_last4_digits": "1234",
        "vip_tier": "standard",
        "customer_ltv": 320.0,
        "order_count": 3,
        "discreet_packaging": False,
        "account_manager": "James Wright",
        "notes": None,
    },
]

DEMO_PRESCRIPTIONS = [
    {"prescription_id": "RX_1001", "customer_id": "CUST_001", "product_name": "Finasteride 1mg", "prescription_status": "active", "refills_remaining": 3},
    {"prescription_id": "RX_1002", "customer_id": "CUST_002", "product_name": "Sildenafil 50mg", "prescription_status": "active", "refills_remaining": 0},
]

DEMO_ORDERS = [
    {
        "order_id": "ORD_7823",
        "order_number": "417",
        "customer_id": "CUST_001",
        "prescription_id": "RX_1001",
        "product_name": "Finasteride 1mg",
        "quantity": 30,
        "order_status": "Rescheduled",
        "order_date": "2025-01-10",
        "estimated_delivery": "2025-01-17",
        "tracking_number": "TRK789012",
        "delivery_address_type": "home",
        "discreet_packaging": True,
        "order_total": 65.0,
        "notes": "Rescheduled due to weather",
    },
    {
        "order_id": "ORD_7824",
        "order_number": "418",
        "customer_id": "CUST_002",
        "prescription_id": "RX_1002",
        "product_name": "Sildenafil 50mg",
        "quantity": 8,
        "order_status": "Shipped",
        "order_date": "2025-01-12",
        "estimated_delivery": "2025-01-18",
        "tracking_number": "TRK789345",
        "delivery_address_type": "home",
        "discreet_packaging": False,
        "order_total": 45.0,
        "notes": None,
    },
]

DEMO_BILLING = [
    {"customer_id": "CUST_001", "card_last4": "9912", "billing_status": "active", "next_billing_date": "2025-02-01"},
    {"customer_id": "CUST_002", "card_last4": "4410", "billing_status": "active", "next_billing_date": "2025-02-05"},
]


async def seed_demo_data() -> bool:
    """Insert the demo records when the customers table is empty. Returns True if seeded."""
    db = get_database()
    existing = await db.fetch_val(sa.select(sa.func.count()).select_from(customers))
    if existing:
        logger.debug("Records already present (%s customers); skipping seed", existing)
        return False
    async with db.transaction():
        await db.execute_many(customers.insert(), DEMO_CUSTOMERS)
        await db.execute_many(prescriptions.insert(), DEMO_PRESCRIPTIONS)
        await db.execute_many(orders.insert(), DEMO_ORDERS)
        await db.execute_many(billing.insert(), DEMO_BILLING)
    logger.info("Seeded demo records (%d customers, %d orders)", len(DEMO_CUSTOMERS), len(DEMO_ORDERS))
    return True
