from typing import Dict, Iterable
from invoice_inbox.domain.schemas import Invoice, Tag

def compute_usage(tags: Iterable[Tag], invoices: Iterable[Invoice]) -> Dict[str, int]:
    """
    Counts, for every known tag, how many invoices carry it.

    Always derived from the full invoice collection (never a filtered view) and
    never maintained incrementally, so it cannot drift from the links it counts.
    Links pointing at unknown tags are ignored.
    """
    usage = {tag.id: 0 for tag in tags}
    for invoice in invoices:
        for link in invoice.tags:
            if link.tag_id in usage:
                usage[link.tag_id] += 1
    return usage
