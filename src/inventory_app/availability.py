"""Whether an inventory item is free during a time window."""

AVAILABLE = "available"
BORROWED = "borrowed"
PARTIALLY_AVAILABLE = "partially_available"

# Borrow statuses that hold on to the item
BLOCKING_STATUSES = ("approved", "active")


def overlaps(start1, end1, start2, end2) -> bool:
    """Closed ranges [start1, end1] and [start2, end2] share at least one instant."""
    return start1 <= end2 and end1 >= start2


def conflicting_borrows(borrows: list[dict], start, end, exclude_id: int = None) -> list[dict]:
    """
    Borrows that hold the item at some point of [start, end].

    Each borrow is a dict with status, start_date and end_date (datetimes).
    """
    return [
        borrow
        for borrow in borrows
        if borrow["status"] in BLOCKING_STATUSES
        and borrow.get("id") != exclude_id
        and overlaps(borrow["start_date"], borrow["end_date"], start, end)
    ]


def availability_status(borrows: list[dict], start, end) -> dict:
    conflicts = conflicting_borrows(borrows, start, end)
    if not conflicts:
        status = AVAILABLE
    elif any(b["start_date"] <= start and b["end_date"] >= end for b in conflicts):
        status = BORROWED
    else:
        status = PARTIALLY_AVAILABLE
    return {"status": status, "available": status == AVAILABLE, "conflicts": conflicts}
