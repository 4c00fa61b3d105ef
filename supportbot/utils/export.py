"""CSV export helpers for the admin console."""
import csv
import io
from typing import Iterable

CUSTOMER_HEADER = ["Name", "Username", "Email", "Phone", "Chat ID", "Last Active", "Joined"]


def _iso(value) -> str:
    return value.isoformat() if value else ""


def customers_to_csv(customers: Iterable[dict]) -> str:
    """Render bot customers as CSV; every field (header included) is double-quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CUSTOMER_HEADER)
    for c in customers:
        name = " ".join(p for p in (c.get("first_name"), c.get("last_name")) if p)
        writer.writerow(
            [
                name,
                c.get("username") or "",
                c.get("email") or "",
                c.get("phone") or "",
                str(c.get("chat_id") or ""),
                _iso(c.get("last_interaction")),
                _iso(c.get("created_at")),
            ]
        )
    return buf.getvalue()
