from flask import Blueprint, g, jsonify

from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.inventory_app import utils as inventory
from src.schemas import parse_args, parse_body

from . import database as db
from . import utils
from .schemas import (
    BorrowCreate,
    BorrowListQuery,
    GuidelineRequest,
    ResponseRequest,
    ReturnRequest,
    RevokeRequest,
)
from .workflow import allowed_actions

borrow_bp = Blueprint(
    "borrow", __name__, url_prefix="/api/households/<int:household_id>"
)


def _with_actions(request: dict) -> dict:
    request["allowed_actions"] = allowed_actions(request["status"])
    return request


# --- Requests ---


@borrow_bp.route("/borrow/requests", methods=["POST"])
@require_session
@require_household_member
def create_request(household_id):
    data = parse_body(BorrowCreate)
    request = utils.request_borrow(household_id, g.member, data)
    return jsonify(_with_actions(request)), 201


@borrow_bp.route("/borrow/requests/<int:request_id>", methods=["GET"])
@require_session
@require_household_member
def get_request(household_id, request_id):
    return jsonify(_with_actions(utils.require_request(household_id, request_id)))


@borrow_bp.route("/borrow/mine", methods=["GET"])
@require_session
@require_household_member
def my_requests(household_id):
    """Requests the signed-in member made."""
    return jsonify([_with_actions(r) for r in db.list_by_borrower(g.member["id"])])


@borrow_bp.route("/borrow/lent", methods=["GET"])
@require_session
@require_household_member
def lent_requests(household_id):
    """Requests for this household's items."""
    query = parse_args(BorrowListQuery)
    return jsonify(
        [_with_actions(r) for r in db.list_by_owner(household_id, status=query.status)]
    )


@borrow_bp.route("/borrow/requests/<int:request_id>/approve", methods=["POST"])
@require_session
@require_household_member
def approve(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    data = parse_body(ResponseRequest)
    return jsonify(_with_actions(utils.approve(request, g.member, data.response_message)))


@borrow_bp.route("/borrow/requests/<int:request_id>/reject", methods=["POST"])
@require_session
@require_household_member
def reject(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    data = parse_body(ResponseRequest)
    return jsonify(_with_actions(utils.reject(request, g.member, data.response_message)))


@borrow_bp.route("/borrow/requests/<int:request_id>/revoke", methods=["POST"])
@require_session
@require_household_member
def revoke(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    data = parse_body(RevokeRequest)
    return jsonify(_with_actions(utils.revoke(request, g.member, data.reason)))


@borrow_bp.route("/borrow/requests/<int:request_id>/pickup", methods=["POST"])
@require_session
@require_household_member
def pickup(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    return jsonify(_with_actions(utils.pickup(request, g.member)))


@borrow_bp.route("/borrow/requests/<int:request_id>/return", methods=["POST"])
@require_session
@require_household_member
def return_item(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    data = parse_body(ReturnRequest)
    return jsonify(_with_actions(utils.return_item(request, g.member, data)))


@borrow_bp.route("/borrow/requests/<int:request_id>/cancel", methods=["POST"])
@require_session
@require_household_member
def cancel(household_id, request_id):
    request = utils.require_request(household_id, request_id)
    return jsonify(_with_actions(utils.cancel(request, g.member)))


@borrow_bp.route("/borrow/requests/<int:request_id>/return-photos", methods=["GET"])
@require_session
@require_household_member
def return_photos(household_id, request_id):
    utils.require_request(household_id, request_id)
    return jsonify(db.list_return_photos(request_id))


# --- Per item ---


@borrow_bp.route("/inventory/<int:item_id>/borrows", methods=["GET"])
@require_session
@require_household_member
def item_borrows(household_id, item_id):
    inventory.require_item(household_id, item_id)
    return jsonify([_with_actions(r) for r in db.list_item_borrows(item_id)])


@borrow_bp.route("/inventory/<int:item_id>/guidelines", methods=["GET"])
@require_session
@require_household_member
def get_guideline(household_id, item_id):
    inventory.require_item(household_id, item_id)
    return jsonify(db.get_guideline(item_id))


@borrow_bp.route("/inventory/<int:item_id>/guidelines", methods=["PUT"])
@require_session
@require_household_member
def save_guideline(household_id, item_id):
    item = inventory.require_item(household_id, item_id)
    data = parse_body(GuidelineRequest)
    return jsonify(utils.save_guideline(item, g.member, data))


@borrow_bp.route("/inventory/<int:item_id>/guidelines", methods=["DELETE"])
@require_session
@require_household_member
def delete_guideline(household_id, item_id):
    item = inventory.require_item(household_id, item_id)
    utils.delete_guideline(item, g.member)
    return jsonify({"success": True})
