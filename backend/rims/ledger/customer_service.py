"""Customer (loyalty/CRM) profiles. Points and spend move only through sales and refunds."""
from __future__ import annotations

from typing import Optional

from rims.validation import ValidationError

from .entities import Customer, new_id


CUSTOMER_FIELDS = {"name", "email", "phone", "notes"}


def add_customer(
    ledger,
    *,
    name: str,
    phone: str = "",
    email: Optional[str] = None,
    notes: Optional[str] = None,
) -> Customer:
    if not name or not name.strip():
        raise ValidationError("Customer name is required")

    with ledger.lock:
        customer = Customer(id=new_id("CUST"), name=name.strip(), phone=phone, email=email, notes=notes)
        ledger.customers[customer.id] = customer
        ledger.sync.enqueue_upsert("customers", customer.to_dict())
        return customer


def update_customer(ledger, customer_id: str, **changes) -> Customer:
    unknown = sorted(set(changes) - CUSTOMER_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update customer fields: {', '.join(unknown)}")
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Customer name cannot be blank")

    with ledger.lock:
        customer = ledger.get_customer(customer_id)
        for key, value in changes.items():
            setattr(customer, key, value)
        ledger.sync.enqueue_upsert("customers", customer.to_dict())
        return customer


def delete_customer(ledger, customer_id: str) -> Customer:
    with ledger.lock:
        customer = ledger.get_customer(customer_id)
        del ledger.customers[customer_id]
        ledger.sync.enqueue_delete("customers", customer_id)
        return customer


def find_customers(ledger, query: str) -> list[Customer]:
    """Lookup at the register by name, phone or email."""
    needle = (query or "").strip().lower()
    return [
        c for c in ledger.customers.values()
        if needle in c.name.lower() or needle in c.phone.lower() or needle in (c.email or "").lower()
    ]
