import logging

from src.activities import database as activity_db
from src.database import transaction
from src.errors import NotFoundError, ValidationError
from src.inventory_app import utils as inventory
from src.tasks_app import database as tasks_db

from . import database as db

logger = logging.getLogger(__name__)


def require_category(household_id: int, category_id: int) -> dict:
    category = db.get_category(household_id, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def require_item(household_id: int, item_id: int) -> dict:
    item = db.get_item(household_id, item_id)
    if item is None:
        raise NotFoundError("Shopping item not found")
    return item


def check_references(household_id: int, fields: dict):
    """Category and task ids given in a body must belong to the household."""
    if fields.get("category_id") is not None:
        if db.get_category(household_id, fields["category_id"]) is None:
            raise ValidationError(f"Category {fields['category_id']} does not exist in this household")
    if fields.get("task_id") is not None:
        if tasks_db.get_task(household_id, fields["task_id"]) is None:
            raise ValidationError(f"Task {fields['task_id']} does not exist in this household")


def add_item(household_id: int, member: dict, fields: dict) -> dict:
    check_references(household_id, fields)
    with transaction():
        item = db.add_item(household_id, member["id"], fields)
        activity_db.log_activity(
            household_id,
            member["id"],
            "shopping",
            "item_added",
            f'"{item["name"]}" added to the shopping list',
            related_item_id=item["id"],
        )
    return item


def update_item(household_id: int, item_id: int, fields: dict) -> dict:
    require_item(household_id, item_id)
    if "name" in fields and fields["name"] is None:
        del fields["name"]
    check_references(household_id, fields)
    return db.update_item(household_id, item_id, fields)


def link_items(household_id: int, item_ids: list[int], task_id: int | None) -> list[dict]:
    """Attach items to a task (or detach them with task_id None)."""
    items = db.get_items(household_id, item_ids)
    missing = sorted(set(item_ids) - {item["id"] for item in items})
    if missing:
        raise NotFoundError("Shopping items not found", [str(item_id) for item_id in missing])
    check_references(household_id, {"task_id": task_id})
    db.link_to_task(household_id, item_ids, task_id)
    return db.get_items(household_id, item_ids)


def complete_shopping(household_id: int, member: dict, data) -> dict:
    """
    Finish a shopping trip.

    The bought items leave the list, the ones named in items_to_inventory
    are kept as inventory items, and a single completed_batch entry records
    the trip.

    Returns:
        dict: activity id, number of removed items and the new inventory items
    """
    items = db.get_items(household_id, data.item_ids)
    found = {item["id"]: item for item in items}
    missing = sorted(set(data.item_ids) - set(found))
    if missing:
        raise NotFoundError("Shopping items not found", [str(item_id) for item_id in missing])

    with transaction():
        created = []
        for entry in data.items_to_inventory:
            source = found[entry.item_id]
            created.append(
                inventory.create_item(
                    household_id,
                    member,
                    {
                        "name": entry.name or source["name"],
                        "details": entry.details if entry.details is not None else source["details"],
                        "category_id": (
                            entry.category_id
                            if entry.category_id is not None
                            else source["category_id"]
                        ),
                        "photo_urls": source["photo_urls"],
                        "ownership_type": entry.ownership_type,
                        "owner_ids": entry.owner_ids,
                    },
                )
            )

        removed = db.delete_items(household_id, list(found))
        names = [found[item_id]["name"] for item_id in dict.fromkeys(data.item_ids)]
        activity_id = activity_db.log_activity(
            household_id,
            member["id"],
            "shopping",
            "completed_batch",
            f'{member["member_name"]} bought {len(names)} item(s)',
            comment=data.comment,
            photo_urls=data.photo_urls,
            metadata={
                "item_count": len(names),
                "items": names,
                "inventory_item_ids": [item["id"] for item in created],
            },
        )

    logger.info(f"Shopping trip in household {household_id}: {removed} item(s) bought")
    return {"activity_id": activity_id, "removed": removed, "inventory_items": created}
