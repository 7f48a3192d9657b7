from flask import Blueprint, g, jsonify

from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.schemas import parse_body

from . import database as db
from . import utils
from .schemas import (
    CategoryCreate,
    CategoryUpdate,
    CompleteBatch,
    ItemCreate,
    ItemToggle,
    ItemUpdate,
    TaskLink,
)

shopping_bp = Blueprint(
    "shopping", __name__, url_prefix="/api/households/<int:household_id>/shopping"
)


# --- Categories ---


@shopping_bp.route("/categories", methods=["GET"])
@require_session
@require_household_member
def list_categories(household_id):
    return jsonify(db.list_categories(household_id))


@shopping_bp.route("/categories", methods=["POST"])
@require_session
@require_household_member
def create_category(household_id):
    data = parse_body(CategoryCreate)
    return jsonify(db.create_category(household_id, data.name, data.color)), 201


@shopping_bp.route("/categories/<int:category_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_category(household_id, category_id):
    utils.require_category(household_id, category_id)
    data = parse_body(CategoryUpdate)
    return jsonify(
        db.update_category(household_id, category_id, data.model_dump(exclude_unset=True))
    )


@shopping_bp.route("/categories/<int:category_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_category(household_id, category_id):
    db.delete_category(household_id, category_id)
    return jsonify({"success": True})


# --- Items ---


@shopping_bp.route("/items", methods=["GET"])
@require_session
@require_household_member
def list_items(household_id):
    return jsonify(db.list_items(household_id))


@shopping_bp.route("/items", methods=["POST"])
@require_session
@require_household_member
def add_item(household_id):
    data = parse_body(ItemCreate)
    return jsonify(utils.add_item(household_id, g.member, data.model_dump())), 201


@shopping_bp.route("/items/<int:item_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_item(household_id, item_id):
    data = parse_body(ItemUpdate)
    return jsonify(
        utils.update_item(household_id, item_id, data.model_dump(exclude_unset=True))
    )


@shopping_bp.route("/items/<int:item_id>/toggle", methods=["POST"])
@require_session
@require_household_member
def toggle_item(household_id, item_id):
    """Ticks an item off while shopping; not written to the history."""
    data = parse_body(ItemToggle)
    return jsonify(db.set_completed(household_id, item_id, data.is_completed, g.member["id"]))


@shopping_bp.route("/items/<int:item_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_item(household_id, item_id):
    utils.require_item(household_id, item_id)
    db.delete_items(household_id, [item_id])
    return jsonify({"success": True})


@shopping_bp.route("/items/link", methods=["POST"])
@require_session
@require_household_member
def link_items(household_id):
    data = parse_body(TaskLink)
    return jsonify(utils.link_items(household_id, data.item_ids, data.task_id))


@shopping_bp.route("/tasks/<int:task_id>/items", methods=["GET"])
@require_session
@require_household_member
def task_items(household_id, task_id):
    return jsonify(db.list_task_items(household_id, task_id))


@shopping_bp.route("/complete", methods=["POST"])
@require_session
@require_household_member
def complete(household_id):
    data = parse_body(CompleteBatch)
    return jsonify(utils.complete_shopping(household_id, g.member, data))
