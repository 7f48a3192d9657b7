import pytest

from src.borrow_app.guidelines import assign_ids, validate_return
from src.errors import ValidationError


@pytest.fixture
def guideline():
    return {
        "instructions_text": "Clean the blade before returning.",
        "checklist_items": [
            {"id": "check-clean", "label": "Cleaned", "required": True},
            {"id": "check-oil", "label": "Oiled", "required": False},
        ],
        "photo_requirements": [
            {"id": "photo-blade", "label": "Blade", "required": True},
            {"id": "photo-case", "label": "Case", "required": False},
        ],
    }


# --- Tests for assign_ids ---


def test_assign_ids_from_labels():
    entries = assign_ids(
        [{"label": "Check tank full"}, {"label": "Check tank full"}, {"label": "!!"}],
        "check",
    )
    assert [entry["id"] for entry in entries] == [
        "check-check-tank-full",
        "check-check-tank-full-2",
        "check-item",
    ]
    assert all(entry["required"] for entry in entries)


def test_assign_ids_keeps_given_ids():
    entries = assign_ids(
        [{"id": "photo-front", "label": "Front"}, {"label": "Front", "required": False}],
        "photo",
    )
    assert entries[0]["id"] == "photo-front"
    assert entries[1]["id"] == "photo-front-2"
    assert entries[1]["required"] is False


def test_assign_ids_rejects_duplicates():
    with pytest.raises(ValidationError) as excinfo:
        assign_ids([{"id": "a", "label": "One"}, {"id": "a", "label": "Two"}], "check")
    assert excinfo.value.details == ["a"]


# --- Tests for validate_return ---


def test_no_guideline_accepts_any_return():
    assert validate_return(None, {}, []) == []


def test_complete_return(guideline):
    errors = validate_return(
        guideline,
        {"check-clean": True},
        [{"requirement_id": "photo-blade", "photo_url": "/api/uploads/blade.jpg"}],
    )
    assert errors == []


def test_missing_pieces_reported_together(guideline):
    errors = validate_return(guideline, {"check-clean": False}, [])
    assert errors == [
        'Checklist: "Cleaned" must be checked',
        'Photo required: "Blade"',
    ]


def test_photo_without_url_does_not_count(guideline):
    errors = validate_return(
        guideline,
        {"check-clean": True},
        [{"requirement_id": "photo-blade", "photo_url": ""}],
    )
    assert errors == ['Photo required: "Blade"']
