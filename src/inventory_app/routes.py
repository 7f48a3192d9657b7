from flask import Blueprint, g, jsonify

from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.schemas import parse_args, parse_body

from . import database as db
from . import utils
from .schemas import AvailabilityQuery, InventoryCreate, InventoryUpdate

inventory_bp = Blueprint(
    "inventory", __name__, url_prefix="/api/households/<int:household_id>/inventory"
)


@inventory_bp.route("", methods=["GET"])
@require_session
@require_household_member
def list_items(household_id):
    """Items by name, with their category and whether they are lent out right now."""
    return jsonify(utils.with_availability(db.list_items(household_id)))


@inventory_bp.route("", methods=["POST"])
@require_session
@require_household_member
def add_item(household_id):
    data = parse_body(InventoryCreate)
    item = utils.create_item(household_id, g.member, data.model_dump())
    return jsonify(item), 201


@inventory_bp.route("/<int:item_id>", methods=["GET"])
@require_session
@require_household_member
def get_item(household_id, item_id):
    item = utils.require_item(household_id, item_id)
    item["availability"] = utils.item_availability(item_id)["status"]
    return jsonify(item)


@inventory_bp.route("/<int:item_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_item(household_id, item_id):
    item = utils.require_item(household_id, item_id)
    data = parse_body(InventoryUpdate)
    item = utils.update_item(item, g.member, data.model_dump(exclude_unset=True))
    return jsonify(item)


@inventory_bp.route("/<int:item_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_item(household_id, item_id):
    item = utils.require_item(household_id, item_id)
    utils.delete_item(item, g.member)
    return jsonify({"success": True})


@inventory_bp.route("/<int:item_id>/availability", methods=["GET"])
@require_session
@require_household_member
def availability(household_id, item_id):
    utils.require_item(household_id, item_id)
    query = parse_args(AvailabilityQuery)
    return jsonify(utils.item_availability(item_id, query.start, query.end))
