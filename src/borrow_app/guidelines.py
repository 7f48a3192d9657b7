"""
Return guidelines of an inventory item: free-text instructions, a checklist
and the photos a borrower has to take before handing the item back.
"""

import re

from src.errors import ValidationError


def _slug(label: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", label.lower()).strip("-") or "item"


def assign_ids(entries: list[dict], prefix: str) -> list[dict]:
    """
    Give every entry an id; entries that already carry one keep it.

    Generated ids are derived from the label and made unique within the list.
    Duplicate ids supplied by the caller are rejected.
    """
    given = [entry["id"] for entry in entries if entry.get("id")]
    duplicates = sorted({entry_id for entry_id in given if given.count(entry_id) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate {prefix} ids", duplicates)

    taken = set(given)
    result = []
    for entry in entries:
        entry = dict(entry)
        if not entry.get("id"):
            base = f"{prefix}-{_slug(entry['label'])}"
            candidate = base
            counter = 2
            while candidate in taken:
                candidate = f"{base}-{counter}"
                counter += 1
            entry["id"] = candidate
            taken.add(candidate)
        entry["required"] = bool(entry.get("required", True))
        result.append(entry)
    return result


def validate_return(
    guideline: dict | None, checklist_state: dict | None, return_photos: list | None
) -> list[str]:
    """
    Everything still missing before a borrowed item can be returned.

    Args:
        guideline: dict with checklist_items and photo_requirements, or None
        checklist_state: {checklist item id: checked}
        return_photos: dicts with a requirement_id each

    Returns:
        list[str]: one message per unchecked required item and per required
        photo that was not submitted; empty when the return is acceptable
    """
    if not guideline:
        return []

    checklist_state = checklist_state or {}
    submitted = {
        photo["requirement_id"] for photo in return_photos or [] if photo.get("photo_url")
    }

    errors = []
    for item in guideline.get("checklist_items") or []:
        if item.get("required") and checklist_state.get(item["id"]) is not True:
            errors.append(f'Checklist: "{item["label"]}" must be checked')

    for requirement in guideline.get("photo_requirements") or []:
        if requirement.get("required") and requirement["id"] not in submitted:
            errors.append(f'Photo required: "{requirement["label"]}"')

    return errors
