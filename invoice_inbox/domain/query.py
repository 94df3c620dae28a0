from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from pydantic import BaseModel

from invoice_inbox.domain.schemas import Invoice, PeriodFilter, Tag, User, as_aware, utc_now

PERIOD_DAYS = {"7d": 7, "30d": 30}


class InvoiceFilters(BaseModel):
    """
    Predicate for the invoice list. Every criterion is ANDed; "all" and "" disable one.
    """
    search: str = ""
    status: str = "all"
    tag: str = "all"
    period: PeriodFilter = "all"


def format_amount(amount: Optional[float]) -> str:
    """Amount as searched: 42.5 -> "42.5", 100.0 -> "100", missing or zero -> ""."""
    if not amount:
        return ""
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)


def build_search_text(invoice: Invoice, tags_by_id: Dict[str, Tag], users_by_id: Dict[str, User]) -> str:
    """
    Lower-cased blob matched by the search box: vendor, sender contact, amount,
    invoice date, status, attached tag labels and sender name.
    """
    sender = users_by_id.get(invoice.sender_user_id) if invoice.sender_user_id else None
    parts = [
        invoice.vendor,
        invoice.sender_email,
        invoice.sender_phone,
        sender.email if sender else None,
        sender.phone if sender else None,
        format_amount(invoice.amount_total),
        invoice.invoice_date,
        invoice.status,
    ]
    for link in invoice.tags:
        tag = tags_by_id.get(link.tag_id)
        parts.append(tag.label if tag else "")
    parts.append(sender.name if sender else "")
    return " ".join(p for p in parts if p).lower()


def matches_period(invoice: Invoice, period: str, now: datetime) -> bool:
    if period == "all":
        return True
    created_at = as_aware(invoice.created_at)
    if period == "today":
        # Same calendar day in the server's local time zone.
        return created_at.astimezone().date() == as_aware(now).astimezone().date()
    days = PERIOD_DAYS[period]
    return as_aware(now) - created_at <= timedelta(days=days)


def matches_filters(
    invoice: Invoice,
    filters: InvoiceFilters,
    tags_by_id: Dict[str, Tag],
    users_by_id: Dict[str, User],
    now: datetime,
) -> bool:
    if filters.status and filters.status != "all" and invoice.status != filters.status:
        return False
    if filters.tag and filters.tag != "all" and invoice.find_link(filters.tag) is None:
        return False
    if not matches_period(invoice, filters.period, now):
        return False
    needle = (filters.search or "").strip().lower()
    if needle and needle not in build_search_text(invoice, tags_by_id, users_by_id):
        return False
    return True


def filter_invoices(
    invoices: Iterable[Invoice],
    filters: InvoiceFilters,
    tags: Iterable[Tag] = (),
    users: Iterable[User] = (),
    now: Optional[datetime] = None,
) -> List[Invoice]:
    """
    Returns the invoices matching every criterion, most recent first.
    Invoices created at the same instant keep their input order. No pagination.
    """
    now = now or utc_now()
    tags_by_id = {tag.id: tag for tag in tags}
    users_by_id = {user.id: user for user in users}

    matched = [
        invoice for invoice in invoices
        if matches_filters(invoice, filters, tags_by_id, users_by_id, now)
    ]
    return sorted(matched, key=lambda invoice: as_aware(invoice.created_at), reverse=True)
