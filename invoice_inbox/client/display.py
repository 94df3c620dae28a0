from datetime import date, datetime
from typing import Any, Dict, Optional

CHANNEL_LABELS = {
    "sms": "Reçue par SMS",
    "email": "Reçue par courriel",
    "upload": "Import manuel",
}
UNKNOWN_CHANNEL = "Source inconnue"

MONTHS_FR = [
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juill.", "août", "sept.", "oct.", "nov.", "déc.",
]


def format_currency(value: float) -> str:
    """Canadian-French money format: 1234.5 -> '1 234,50 $'."""
    text = f"{float(value):,.2f}".replace(",", " ").replace(".", ",")
    return f"{text} $"


def format_date(value: Optional[str]) -> str:
    """'2024-03-12' -> '12 mars 2024'. Unparseable values are returned unchanged."""
    if not value:
        return ""
    try:
        parsed = date.fromisoformat(value[:10])
    except ValueError:
        return value
    return f"{parsed.day} {MONTHS_FR[parsed.month - 1]} {parsed.year}"


def format_time(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return ""
    return parsed.astimezone().strftime("%H h %M")


def _sender_suffix(invoice: Dict[str, Any]) -> Optional[str]:
    sender = invoice.get("sender") or {}
    return sender.get("name") or invoice.get("senderEmail") or invoice.get("senderPhone")


def build_invoice_source(invoice: Dict[str, Any]) -> str:
    """List row caption, e.g. 'SMS · Marie Tremblay'."""
    channel = invoice["source"].upper() if invoice.get("source") else "INCONNU"
    suffix = _sender_suffix(invoice)
    return f"{channel} · {suffix}" if suffix else channel


def build_invoice_channel(invoice: Dict[str, Any]) -> str:
    """Detail header caption, e.g. 'Reçue par courriel · compta@acme.ca'."""
    label = CHANNEL_LABELS.get(invoice.get("source"), UNKNOWN_CHANNEL)
    suffix = _sender_suffix(invoice)
    return f"{label} · {suffix}" if suffix else label


def build_invoice_summary(invoice: Dict[str, Any]) -> str:
    parts = []
    if invoice.get("amountTotal"):
        parts.append(format_currency(invoice["amountTotal"]))
    if invoice.get("invoiceDate"):
        parts.append(format_date(invoice["invoiceDate"]))
    if invoice.get("paymentMethod"):
        parts.append(invoice["paymentMethod"])
    return " · ".join(parts)


def build_message_meta(message: Dict[str, Any], current_user_id: str) -> str:
    """Bubble caption: author then time. Messages of the current user read 'Vous'."""
    author = "Vous" if message.get("fromUserId") == current_user_id else message.get("authorName", "")
    return f"{author} · {format_time(message.get('createdAt'))}"
