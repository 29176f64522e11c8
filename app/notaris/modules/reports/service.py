from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.notaris.constants import ROLE_CLIENT, STAFF_ROLES
from app.notaris.models import ClientProfile
from app.notaris.modules.appointments.models import Appointment
from app.notaris.modules.appointments.service import serialize_appointment
from app.notaris.modules.documents.models import Document
from app.notaris.modules.documents.service import scope_to_user, serialize_document
from app.notaris.modules.invoices.models import Invoice, Payment
from app.notaris.modules.ledger.models import Repertorium
from app.notaris.utils import money

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User

UNPAID_INVOICE_STATUSES = ("SENT", "PARTIALLY_PAID", "OVERDUE")


def month_bounds(today: date | None = None) -> tuple[datetime, datetime]:
    today = today or date.today()
    start = datetime(today.year, today.month, 1)
    end = datetime(today.year + 1, 1, 1) if today.month == 12 else datetime(today.year, today.month + 1, 1)
    return start, end


def _counts_by(q, column) -> dict[str, int]:
    return {key: int(n) for key, n in q.with_entities(column, func.count()).group_by(column).all()}


def overview(s: "Session") -> dict[str, Any]:
    start, end = month_bounds()
    docs = s.query(Document).filter(Document.deleted_at.is_(None))
    revenue = s.query(func.coalesce(func.sum(Invoice.paid_amount), 0)).scalar() or Decimal("0")
    return {
        "documents_by_status": _counts_by(docs, Document.status),
        "documents_total": docs.count(),
        "appointments_this_month": s.query(Appointment)
        .filter(Appointment.cancelled_at.is_(None), Appointment.scheduled_at >= start, Appointment.scheduled_at < end)
        .count(),
        "revenue": money(revenue),
        "invoices_by_status": _counts_by(s.query(Invoice), Invoice.status),
        "new_clients_this_month": s.query(ClientProfile)
        .filter(ClientProfile.created_at >= start, ClientProfile.created_at < end)
        .count(),
    }


def dashboard_stats(s: "Session", user: "User") -> dict[str, Any]:
    """Role-scoped: clients see their own rows, staff their assignments."""
    now = datetime.utcnow()
    today = now.date()
    start, end = month_bounds(today)

    docs = scope_to_user(s.query(Document).filter(Document.deleted_at.is_(None)), Document, user)
    deadlines = (
        docs.filter(
            Document.due_date.is_not(None),
            Document.due_date >= today,
            Document.due_date <= today + timedelta(days=7),
            Document.status.not_in(("completed", "cancelled")),
        )
        .order_by(Document.due_date.asc())
        .limit(10)
        .all()
    )
    appointments = (
        scope_to_user(s.query(Appointment), Appointment, user, include_unassigned=False)
        .filter(Appointment.cancelled_at.is_(None), Appointment.scheduled_at >= now)
        .order_by(Appointment.scheduled_at.asc())
        .limit(5)
        .all()
    )

    invoices = s.query(Invoice)
    if user.role == ROLE_CLIENT:
        invoices = invoices.filter(Invoice.client_id == (user.client_profile.id if user.client_profile else -1))
    revenue = (
        invoices.join(Payment, Payment.invoice_id == Invoice.id)
        .filter(Payment.paid_at >= start, Payment.paid_at < end)
        .with_entities(func.coalesce(func.sum(Payment.amount), 0))
        .scalar()
    )

    stats: dict[str, Any] = {
        "documents_by_status": _counts_by(docs, Document.status),
        "revenue_this_month": money(revenue),
        "unpaid_invoices": invoices.filter(Invoice.status.in_(UNPAID_INVOICE_STATUSES)).count(),
        "upcoming_deadlines": [serialize_document(d) for d in deadlines],
        "upcoming_appointments": [serialize_appointment(a) for a in appointments],
        "akta_this_month": None,
        "akta_this_year": None,
    }
    if user.role in STAFF_ROLES:
        stats["akta_this_month"] = s.query(Repertorium).filter(Repertorium.tahun == today.year, Repertorium.bulan == today.month).count()
        stats["akta_this_year"] = s.query(Repertorium).filter(Repertorium.tahun == today.year).count()
    return stats
