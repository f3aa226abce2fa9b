"""Employees (team roster)."""
from __future__ import annotations

from typing import Optional

from rims.validation import ValidationError

from .entities import Employee, EMPLOYEE_ROLES, new_id


EMPLOYEE_FIELDS = {"name", "email", "role", "assigned_location_id", "phone", "status"}
EMPLOYEE_STATUSES = {"ACTIVE", "INACTIVE"}


def _check(ledger, changes: dict) -> None:
    if "role" in changes and changes["role"] not in EMPLOYEE_ROLES:
        raise ValidationError(f"role must be one of {', '.join(sorted(EMPLOYEE_ROLES))}")
    if "status" in changes and changes["status"] not in EMPLOYEE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(sorted(EMPLOYEE_STATUSES))}")
    if changes.get("assigned_location_id"):
        ledger.get_location(changes["assigned_location_id"])
    for key in ("name", "email"):
        if key in changes and not (changes[key] or "").strip():
            raise ValidationError(f"{key} is required")


def add_employee(
    ledger,
    *,
    name: str,
    email: str,
    role: str = "CASHIER",
    assigned_location_id: Optional[str] = None,
    phone: Optional[str] = None,
) -> Employee:
    with ledger.lock:
        _check(ledger, {"name": name, "email": email, "role": role, "assigned_location_id": assigned_location_id})
        email = email.strip().lower()
        if any(e.email == email for e in ledger.employees.values()):
            raise ValidationError(f"Employee with email {email} already exists")

        employee = Employee(
            id=new_id("EMP"),
            name=name.strip(),
            email=email,
            role=role,
            assigned_location_id=assigned_location_id,
            phone=phone,
        )
        ledger.employees[employee.id] = employee
        ledger.sync.enqueue_upsert("employees", employee.to_dict())
        return employee


def update_employee(ledger, employee_id: str, **changes) -> Employee:
    unknown = sorted(set(changes) - EMPLOYEE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown employee fields: {', '.join(unknown)}")

    with ledger.lock:
        employee = ledger.get_employee(employee_id)
        _check(ledger, changes)
        for key, value in changes.items():
            setattr(employee, key, value)
        ledger.sync.enqueue_upsert("employees", employee.to_dict())
        return employee


def delete_employee(ledger, employee_id: str) -> Employee:
    with ledger.lock:
        employee = ledger.get_employee(employee_id)
        del ledger.employees[employee_id]
        ledger.sync.enqueue_delete("employees", employee_id)
        return employee


def find_employee_by_email(ledger, email: str) -> Optional[Employee]:
    """Sign-in lookup. No credential check is done here."""
    email = (email or "").strip().lower()
    for employee in ledger.employees.values():
        if employee.email == email and employee.status == "ACTIVE":
            return employee
    return None
