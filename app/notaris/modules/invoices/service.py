from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from app.notaris.audit import record_event
from app.notaris.constants import INVOICE_STATUSES, PAYMENT_METHODS
from app.notaris.models import ClientProfile
from app.notaris.modules.documents.models import Document
from app.notaris.modules.invoices.models import Invoice, InvoiceItem, Payment, ServiceFee
from app.notaris.utils import clean_str, iso, money, parse_bool, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User

CENT = Decimal("0.01")


class InvoiceError(Exception):
    pass


def to_decimal(value: Any, field: str) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise InvoiceError(f"{field} must be a number.") from None
    if not d.is_finite():
        raise InvoiceError(f"{field} must be a number.")
    return d


def _q(d: Decimal) -> Decimal:
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def next_invoice_number(s: "Session", year: int | None = None) -> str:
    year = year or date.today().year
    prefix = f"INV-{year}-"
    last = (
        s.query(Invoice.invoice_number)
        .filter(Invoice.invoice_number.like(f"{prefix}%"))
        .order_by(Invoice.invoice_number.desc())
        .first()
    )
    seq = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def build_items(raw_items: Any) -> list[InvoiceItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise InvoiceError("At least one item is required.")
    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise InvoiceError("Each item must be an object.")
        description = clean_str(raw.get("description"))
        if not description:
            raise InvoiceError("Item description is required.")
        quantity = parse_int(raw.get("quantity"), 1) or 1
        unit_price = to_decimal(raw.get("unit_price"), "unit_price")
        items.append(
            InvoiceItem(
                description=description,
                quantity=quantity,
                unit_price=_q(unit_price),
                amount=_q(unit_price * quantity),
                order=idx,
            )
        )
    return items


def recalculate(inv: Invoice) -> None:
    """subtotal = sum(qty * price); tax = subtotal * pct / 100; total = subtotal + tax - discount."""
    subtotal = sum((Decimal(i.quantity) * Decimal(i.unit_price) for i in inv.items), Decimal("0"))
    tax_amount = subtotal * Decimal(inv.tax_percent or 0) / Decimal(100)
    inv.subtotal = _q(subtotal)
    inv.tax_amount = _q(tax_amount)
    inv.total_amount = _q(subtotal + tax_amount - Decimal(inv.discount_amount or 0))


def create_invoice(s: "Session", payload: dict, user: "User") -> Invoice:
    client_id = parse_int(payload.get("client_id"))
    if client_id is None:
        raise InvoiceError("client_id is required.")
    if s.get(ClientProfile, client_id) is None:
        raise InvoiceError("Client not found.")
    document_id = parse_int(payload.get("document_id"))
    if document_id is not None and s.get(Document, document_id) is None:
        raise InvoiceError("Document not found.")
    items = build_items(payload.get("items"))
    try:
        due_date = parse_date(payload.get("due_date"))
    except ValueError:
        raise InvoiceError("due_date must be YYYY-MM-DD.") from None

    now = datetime.utcnow()
    inv = Invoice(
        invoice_number=next_invoice_number(s, now.year),
        client_id=client_id,
        document_id=document_id,
        status="DRAFT",
        notes=clean_str(payload.get("notes")),
        tax_percent=to_decimal(payload.get("tax_percent"), "tax_percent"),
        discount_amount=_q(to_decimal(payload.get("discount_amount"), "discount_amount")),
        paid_amount=Decimal("0"),
        due_date=due_date,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    inv.items = items
    recalculate(inv)
    s.add(inv)
    s.flush()
    record_event(
        s,
        actor=user,
        action="invoice.create",
        entity_type="Invoice",
        entity_id=inv.id,
        metadata={"invoice_number": inv.invoice_number, "total_amount": str(inv.total_amount)},
    )
    return inv


def update_invoice(s: "Session", inv: Invoice, payload: dict, user: "User") -> None:
    now = datetime.utcnow()
    status = clean_str(payload.get("status"))
    if status:
        status = status.upper()
        if status not in INVOICE_STATUSES:
            raise InvoiceError(f"Invalid status. Must be one of: {', '.join(INVOICE_STATUSES)}")
        inv.status = status
        if status == "SENT" and inv.sent_at is None:
            inv.sent_at = now
        if status == "PAID":
            inv.paid_at = now
    if "notes" in payload:
        inv.notes = clean_str(payload.get("notes"))
    if "due_date" in payload:
        try:
            inv.due_date = parse_date(payload.get("due_date"))
        except ValueError:
            raise InvoiceError("due_date must be YYYY-MM-DD.") from None

    dirty_totals = False
    if "items" in payload:
        new_items = build_items(payload.get("items"))
        inv.items.clear()
        s.flush()
        inv.items.extend(new_items)
        dirty_totals = True
    if "tax_percent" in payload:
        inv.tax_percent = to_decimal(payload.get("tax_percent"), "tax_percent")
        dirty_totals = True
    if "discount_amount" in payload:
        inv.discount_amount = _q(to_decimal(payload.get("discount_amount"), "discount_amount"))
        dirty_totals = True
    if dirty_totals:
        recalculate(inv)

    inv.updated_at = now
    record_event(s, actor=user, action="invoice.update", entity_type="Invoice", entity_id=inv.id, metadata={"status": inv.status})


def record_payment(s: "Session", inv: Invoice, payload: dict, user: "User") -> Payment:
    amount = to_decimal(payload.get("amount"), "amount")
    if amount <= 0:
        raise InvoiceError("Payment amount must be greater than 0.")
    method = (clean_str(payload.get("method")) or "BANK_TRANSFER").upper()
    if method not in PAYMENT_METHODS:
        raise InvoiceError(f"Invalid method. Must be one of: {', '.join(PAYMENT_METHODS)}")

    now = datetime.utcnow()
    payment = Payment(
        amount=_q(amount),
        method=method,
        reference=clean_str(payload.get("reference")),
        notes=clean_str(payload.get("notes")),
        paid_at=now,
        recorded_by_user_id=user.id,
    )
    inv.payments.append(payment)
    inv.paid_amount = _q(Decimal(inv.paid_amount or 0) + payment.amount)
    if inv.paid_amount >= Decimal(inv.total_amount):
        inv.status = "PAID"
        inv.paid_at = now
    else:
        inv.status = "PARTIALLY_PAID"
    inv.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="invoice.payment",
        entity_type="Invoice",
        entity_id=inv.id,
        metadata={"amount": str(payment.amount), "method": method, "paid_amount": str(inv.paid_amount), "status": inv.status},
    )
    return payment


# -- serialization ---------------------------------------------------------


def serialize_payment(p: Payment) -> dict[str, Any]:
    return {
        "id": p.id,
        "amount": money(p.amount),
        "method": p.method,
        "reference": p.reference,
        "notes": p.notes,
        "paid_at": iso(p.paid_at),
        "recorded_by_user_id": p.recorded_by_user_id,
    }


def serialize_invoice(inv: Invoice, *, detail: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "status": inv.status,
        "client": {
            "id": inv.client.id,
            "name": inv.client.user.name,
            "company_name": inv.client.company_name,
        },
        "document_id": inv.document_id,
        "subtotal": money(inv.subtotal),
        "tax_percent": money(inv.tax_percent),
        "tax_amount": money(inv.tax_amount),
        "discount_amount": money(inv.discount_amount),
        "total_amount": money(inv.total_amount),
        "paid_amount": money(inv.paid_amount),
        "due_date": iso(inv.due_date),
        "sent_at": iso(inv.sent_at),
        "paid_at": iso(inv.paid_at),
        "created_at": iso(inv.created_at),
        "items": [
            {
                "id": i.id,
                "description": i.description,
                "quantity": i.quantity,
                "unit_price": money(i.unit_price),
                "amount": money(i.amount),
                "order": i.order,
            }
            for i in inv.items
        ],
    }
    if detail:
        out["notes"] = inv.notes
        out["payments"] = [serialize_payment(p) for p in inv.payments]
        out["created_by"] = inv.created_by.name if inv.created_by else None
    return out


# -- service fees ----------------------------------------------------------


def serialize_service_fee(fee: ServiceFee) -> dict[str, Any]:
    return {
        "id": fee.id,
        "name": fee.name,
        "description": fee.description,
        "category": fee.category,
        "base_fee": money(fee.base_fee),
        "is_active": fee.is_active,
    }


def apply_service_fee_payload(fee: ServiceFee, payload: dict) -> list[str]:
    errors = []
    if "name" in payload or fee.id is None:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            fee.name = name
    if "base_fee" in payload or fee.id is None:
        raw = payload.get("base_fee")
        if raw in (None, ""):
            errors.append("base_fee is required.")
        else:
            try:
                fee.base_fee = _q(to_decimal(raw, "base_fee"))
            except InvoiceError as e:
                errors.append(str(e))
    if "description" in payload:
        fee.description = clean_str(payload.get("description"))
    if "category" in payload or fee.id is None:
        fee.category = clean_str(payload.get("category")) or "notaris"
    if "is_active" in payload:
        fee.is_active = parse_bool(payload.get("is_active"), default=True)
    fee.updated_at = datetime.utcnow()
    return errors
