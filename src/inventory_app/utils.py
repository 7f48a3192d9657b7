import logging

from src.activities import database as activity_db
from src.borrow_app import database as borrow_db
from src.database import format_timestamp, parse_timestamp, transaction, utcnow
from src.errors import NotFoundError, ValidationError
from src.households.utils import validate_member_ids
from src.shopping_app import database as shopping_db

from . import database as db
from .availability import availability_status

logger = logging.getLogger(__name__)


def require_item(household_id: int, item_id: int) -> dict:
    """An item of the given household; other households' items are reported missing."""
    item = db.get_item(item_id)
    if item is None or item["household_id"] != household_id:
        raise NotFoundError("Inventory item not found")
    return item


def require_any_item(item_id: int) -> dict:
    item = db.get_item(item_id)
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def check_category(household_id: int, category_id: int | None):
    if category_id is not None and shopping_db.get_category(household_id, category_id) is None:
        raise ValidationError(f"Category {category_id} does not exist in this household")


def check_owners(household_id: int, ownership_type: str, owner_ids: list[int]) -> list[int]:
    if ownership_type == "personal" and not owner_ids:
        raise ValidationError("Personal items need at least one owner")
    if ownership_type == "household":
        return []
    return validate_member_ids(household_id, owner_ids)


def is_owner(item: dict, member: dict) -> bool:
    """Owners decide about borrow requests: named owners of personal items, any member for household items."""
    if item["ownership_type"] == "personal":
        return member["id"] in item["owner_ids"]
    return member["household_id"] == item["household_id"]


def create_item(household_id: int, member: dict, fields: dict) -> dict:
    check_category(household_id, fields.get("category_id"))
    owner_ids = check_owners(
        household_id, fields.get("ownership_type") or "household", fields.get("owner_ids") or []
    )

    with transaction():
        item_id = db.insert_item(household_id, member["id"], fields)
        db.set_owners(item_id, owner_ids)
        activity_db.log_activity(
            household_id,
            member["id"],
            "inventory",
            "item_added",
            f'"{fields["name"]}" added to the inventory',
            related_item_id=item_id,
        )
    return db.get_item(item_id)


def update_item(item: dict, member: dict, fields: dict) -> dict:
    household_id = item["household_id"]
    for key in ("name", "ownership_type"):
        if key in fields and fields[key] is None:
            del fields[key]
    if "category_id" in fields:
        check_category(household_id, fields["category_id"])

    ownership_type = fields.get("ownership_type") or item["ownership_type"]
    owner_ids = fields.get("owner_ids")
    if owner_ids is None:
        owner_ids = item["owner_ids"]
    owner_ids = check_owners(household_id, ownership_type, owner_ids)

    with transaction():
        db.update_item(item["id"], fields)
        db.set_owners(item["id"], owner_ids)
        activity_db.log_activity(
            household_id,
            member["id"],
            "inventory",
            "item_updated",
            f'"{fields.get("name") or item["name"]}" updated',
            related_item_id=item["id"],
            metadata={"fields": sorted(fields)},
        )
    return db.get_item(item["id"])


def delete_item(item: dict, member: dict):
    with transaction():
        db.delete_item(item["id"])
        activity_db.log_activity(
            item["household_id"],
            member["id"],
            "inventory",
            "item_deleted",
            f'"{item["name"]}" removed from the inventory',
            related_item_id=item["id"],
        )


def _parsed(borrow: dict) -> dict:
    return {
        **borrow,
        "start_date": parse_timestamp(borrow["start_date"]),
        "end_date": parse_timestamp(borrow["end_date"]),
    }


def item_availability(item_id: int, start=None, end=None) -> dict:
    """
    Availability of an item during [start, end]; both default to now.

    Returns:
        dict: status, available flag and the conflicting borrows
    """
    now = utcnow()
    start = parse_timestamp(format_timestamp(start)) if start else now
    end = parse_timestamp(format_timestamp(end)) if end else start

    borrows = [_parsed(borrow) for borrow in borrow_db.list_item_borrows(item_id)]
    result = availability_status(borrows, start, end)
    result["conflicts"] = [
        {
            "id": borrow["id"],
            "status": borrow["status"],
            "borrower_member_id": borrow["borrower_member_id"],
            "borrower_name": borrow.get("borrower_name"),
            "start_date": format_timestamp(borrow["start_date"]),
            "end_date": format_timestamp(borrow["end_date"]),
        }
        for borrow in result["conflicts"]
    ]
    result["start"] = format_timestamp(start)
    result["end"] = format_timestamp(end)
    return result


def with_availability(items: list[dict]) -> list[dict]:
    for item in items:
        item["availability"] = item_availability(item["id"])["status"]
    return items
