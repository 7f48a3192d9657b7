"""
Borrow workflow: requests for inventory items move through the status
machine in workflow.py. Each step writes the request, its calendar entries,
an activity entry and notifications in one transaction.
"""

import logging

from src.activities import database as activity_db
from src.calendar_app import database as calendar_db
from src.database import format_timestamp, now_iso, parse_timestamp, transaction
from src.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from src.inventory_app import utils as inventory
from src.inventory_app.availability import conflicting_borrows
from src.notifications.utils import notify_borrow_event

from . import database as db
from .guidelines import assign_ids, validate_return
from .workflow import APPROVED, PENDING, transition

logger = logging.getLogger(__name__)


def require_request(household_id: int, request_id: int) -> dict:
    """A request the household takes part in, as borrower or as owner."""
    request = db.get_request(request_id)
    if request is None or household_id not in (
        request["borrower_household_id"],
        request["owner_household_id"],
    ):
        raise NotFoundError("Borrow request not found")
    return request


def require_owner(item: dict, member: dict):
    if not inventory.is_owner(item, member):
        raise PermissionDeniedError("Only the owners of this item can do that")


def require_borrower(request: dict, member: dict):
    if request["borrower_member_id"] != member["id"]:
        raise PermissionDeniedError("Only the borrower can do that")


def check_conflicts(item_id: int, start, end, exclude_id: int = None):
    """An item can't be promised twice for overlapping time ranges."""
    borrows = [
        {
            **borrow,
            "start_date": parse_timestamp(borrow["start_date"]),
            "end_date": parse_timestamp(borrow["end_date"]),
        }
        for borrow in db.list_item_borrows(item_id)
    ]
    conflicts = conflicting_borrows(borrows, start, end, exclude_id=exclude_id)
    if conflicts:
        raise ConflictError(
            "The item is already borrowed during this time",
            [
                f'{conflict["borrower_name"]}: {format_timestamp(conflict["start_date"])} '
                f'to {format_timestamp(conflict["end_date"])}'
                for conflict in conflicts
            ],
        )


def _dates(request: dict):
    return parse_timestamp(request["start_date"]), parse_timestamp(request["end_date"])


def create_calendar_events(request: dict, item: dict, member_id: int):
    """Pickup and return dates of an approved borrow in the owner's calendar."""
    for event_type, date_field, title, icon in (
        ("borrow_start", "start_date", f'Pick up "{item["name"]}"', "box-arrow-right"),
        ("borrow_return", "end_date", f'Return "{item["name"]}"', "box-arrow-in-left"),
    ):
        calendar_db.insert_event(
            request["owner_household_id"],
            {
                "title": title,
                "description": f'Borrowed by {request["borrower_name"]}',
                "start_date": request[date_field],
                "event_type": event_type,
                "icon": icon,
                "related_borrow_id": request["id"],
            },
            created_by=member_id,
        )


def _log(request: dict, member: dict, action: str, description: str, **metadata):
    activity_db.log_activity(
        request["borrower_household_id"],
        member["id"],
        "inventory",
        action,
        description,
        related_item_id=request["inventory_item_id"],
        metadata={"request_id": request["id"], **metadata},
    )


def _notify_borrower(request: dict, member: dict, title: str, message: str):
    if request["borrower_member_id"] != member["id"]:
        notify_borrow_event(
            request["borrower_household_id"],
            request["borrower_member_id"],
            title,
            message,
            request["id"],
        )


def _notify_owners(request: dict, item: dict, member: dict, title: str, message: str):
    """Named owners of personal items; nobody for household items."""
    for owner_id in item["owner_ids"]:
        if owner_id == member["id"]:
            continue
        notify_borrow_event(item["household_id"], owner_id, title, message, request["id"])


# --- Workflow steps ---


def request_borrow(household_id: int, member: dict, data) -> dict:
    """
    Ask to borrow an item for [start_date, end_date].

    Household items are approved right away; personal items wait for one of
    their owners.
    """
    item = inventory.require_item(household_id, data.inventory_item_id)
    if item["ownership_type"] == "personal" and item["owner_ids"] == [member["id"]]:
        raise ValidationError("You can't borrow your own item")

    start = parse_timestamp(format_timestamp(data.start_date))
    end = parse_timestamp(format_timestamp(data.end_date))
    auto_approve = item["ownership_type"] == "household"
    status = APPROVED if auto_approve else PENDING

    # Checked under the write lock so two overlapping requests can't both pass
    with transaction("request_borrow", immediate=True):
        check_conflicts(item["id"], start, end)
        request_id = db.insert_request(
            {
                "inventory_item_id": item["id"],
                "borrower_household_id": household_id,
                "borrower_member_id": member["id"],
                "owner_household_id": item["household_id"],
                "status": status,
                "start_date": format_timestamp(start),
                "end_date": format_timestamp(end),
                "request_message": data.request_message,
                "approved_at": now_iso() if auto_approve else None,
            }
        )
        request = db.get_request(request_id)
        if auto_approve:
            create_calendar_events(request, item, member["id"])
        _log(
            request,
            member,
            "borrow_requested",
            f'{member["member_name"]} asked to borrow "{item["name"]}"',
            start_date=request["start_date"],
            end_date=request["end_date"],
            auto_approved=auto_approve,
        )
        _notify_owners(
            request,
            item,
            member,
            "New borrow request",
            f'{member["member_name"]} would like to borrow "{item["name"]}" '
            f'from {request["start_date"][:10]} to {request["end_date"][:10]}',
        )

    return {**db.get_request(request_id), "auto_approved": auto_approve}


def approve(request: dict, member: dict, response_message: str = None) -> dict:
    item = inventory.require_any_item(request["inventory_item_id"])
    require_owner(item, member)
    with transaction("approve", immediate=True):
        request = db.get_request(request["id"])
        status = transition(request["status"], "approve")
        check_conflicts(item["id"], *_dates(request), exclude_id=request["id"])
        db.update_status(
            request["id"],
            status,
            {
                "response_message": response_message,
                "approved_by": member["id"],
                "approved_at": now_iso(),
            },
        )
        create_calendar_events(request, item, member["id"])
        _log(
            request,
            member,
            "borrow_approved",
            f'Borrow request for "{item["name"]}" was approved',
        )
        _notify_borrower(
            request,
            member,
            "Borrow request approved",
            f'{member["member_name"]} approved your request for "{item["name"]}"',
        )
    return db.get_request(request["id"])


def reject(request: dict, member: dict, response_message: str = None) -> dict:
    item = inventory.require_any_item(request["inventory_item_id"])
    require_owner(item, member)
    status = transition(request["status"], "reject")

    with transaction():
        db.update_status(
            request["id"],
            status,
            {"response_message": response_message, "approved_by": member["id"]},
        )
        _log(
            request,
            member,
            "borrow_rejected",
            f'Borrow request for "{item["name"]}" was rejected',
        )
        _notify_borrower(
            request,
            member,
            "Borrow request rejected",
            f'{member["member_name"]} rejected your request for "{item["name"]}"',
        )
    return db.get_request(request["id"])


def revoke(request: dict, member: dict, reason: str) -> dict:
    """Take back an approval before the item was picked up."""
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to revoke an approval")
    item = inventory.require_any_item(request["inventory_item_id"])
    require_owner(item, member)
    status = transition(request["status"], "revoke")

    with transaction():
        db.update_status(
            request["id"],
            status,
            {"response_message": f'Revoked by {member["member_name"]}: {reason.strip()}'},
        )
        calendar_db.delete_borrow_events(request["id"])
        _log(
            request,
            member,
            "borrow_revoked",
            f'Approval for "{item["name"]}" was revoked',
            reason=reason.strip(),
        )
        _notify_borrower(
            request,
            member,
            "Borrow approval revoked",
            f'{member["member_name"]} revoked the approval for "{item["name"]}": {reason.strip()}',
        )
    return db.get_request(request["id"])


def pickup(request: dict, member: dict) -> dict:
    item = inventory.require_any_item(request["inventory_item_id"])
    if request["borrower_member_id"] != member["id"]:
        require_owner(item, member)
    status = transition(request["status"], "pickup")

    with transaction():
        db.update_status(request["id"], status, {"borrowed_at": now_iso()})
        _log(
            request,
            member,
            "borrow_picked_up",
            f'"{item["name"]}" was picked up',
        )
    return db.get_request(request["id"])


def return_item(request: dict, member: dict, data) -> dict:
    """
    Hand a borrowed item back.

    The item's guideline decides what is required: every required checklist
    item checked and a photo for every required photo requirement. All
    missing pieces are reported at once.
    """
    require_borrower(request, member)
    item = inventory.require_any_item(request["inventory_item_id"])
    status = transition(request["status"], "return")

    photos = [photo.model_dump() for photo in data.return_photos]
    errors = validate_return(db.get_guideline(item["id"]), data.checklist_state, photos)
    if errors:
        raise ValidationError("The return is incomplete", errors)

    with transaction():
        if photos:
            db.add_return_photos(request["id"], photos, member["id"])
        db.update_status(
            request["id"],
            status,
            {"returned_at": now_iso(), "condition_report": data.condition_report},
        )
        calendar_db.complete_borrow_return_event(request["id"])
        _log(
            request,
            member,
            "borrow_returned",
            f'"{item["name"]}" was returned',
            photo_count=len(photos),
        )
        _notify_owners(
            request,
            item,
            member,
            "Item returned",
            f'{member["member_name"]} returned "{item["name"]}"',
        )
    return db.get_request(request["id"])


def cancel(request: dict, member: dict) -> dict:
    require_borrower(request, member)
    status = transition(request["status"], "cancel")
    item = inventory.require_any_item(request["inventory_item_id"])

    with transaction():
        db.update_status(request["id"], status)
        calendar_db.delete_borrow_events(request["id"])
        _log(
            request,
            member,
            "borrow_cancelled",
            f'Borrow request for "{item["name"]}" was cancelled',
        )
    return db.get_request(request["id"])


# --- Guidelines ---


def save_guideline(item: dict, member: dict, data) -> dict:
    require_owner(item, member)
    checklist_items = assign_ids(
        [entry.model_dump() for entry in data.checklist_items], "check"
    )
    photo_requirements = assign_ids(
        [entry.model_dump() for entry in data.photo_requirements], "photo"
    )
    guideline = db.save_guideline(
        item["id"], data.instructions_text, checklist_items, photo_requirements, member["id"]
    )
    logger.info(f"Borrow guideline of item {item['id']} saved")
    return guideline


def delete_guideline(item: dict, member: dict):
    require_owner(item, member)
    if not db.delete_guideline(item["id"]):
        raise NotFoundError("This item has no guideline")
