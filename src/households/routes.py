import logging

from flask import Blueprint, g, jsonify

from src.activities import database as activity_db
from src.auth.tokens import require_session
from src.database import transaction
from src.errors import PermissionDeniedError
from src.schemas import parse_body

from . import database as db
from .schemas import HouseholdCreate, HouseholdJoin, MemberCreate, MemberUpdate
from .utils import (
    create_household,
    generate_unique_invite_code,
    join_household,
    require_household_member,
    require_member_of,
)

logger = logging.getLogger(__name__)

households_bp = Blueprint("households", __name__, url_prefix="/api/households")


@households_bp.route("", methods=["GET"])
@require_session
def list_households():
    """Households of the signed-in user, with the user's member id in each."""
    return jsonify(db.list_user_households(g.user.id))


@households_bp.route("", methods=["POST"])
@require_session
def create():
    data = parse_body(HouseholdCreate)
    return jsonify(create_household(data.name, g.user)), 201


@households_bp.route("/join", methods=["POST"])
@require_session
def join():
    data = parse_body(HouseholdJoin)
    result = join_household(data.invite_code, g.user, data.member_name)
    return jsonify(result), 201


@households_bp.route("/<int:household_id>", methods=["GET"])
@require_session
@require_household_member
def get_household(household_id):
    household = db.get_household(household_id)
    household["members"] = db.list_members(household_id)
    return jsonify(household)


@households_bp.route("/<int:household_id>/switch", methods=["POST"])
@require_session
@require_household_member
def switch_household(household_id):
    """Member context the client uses once it switches to this household."""
    household = db.get_household(household_id)
    return jsonify(
        {
            "household_id": household_id,
            "household_name": household["name"],
            "member_id": g.member["id"],
            "member_name": g.member["member_name"],
        }
    )


@households_bp.route("/<int:household_id>/invite-code", methods=["POST"])
@require_session
@require_household_member
def regenerate_invite_code(household_id):
    invite_code = generate_unique_invite_code()
    db.set_invite_code(household_id, invite_code)
    logger.info(f"Invite code of household {household_id} regenerated")
    return jsonify({"invite_code": invite_code})


@households_bp.route("/<int:household_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_household(household_id):
    household = db.get_household(household_id)
    if household["created_by"] != g.user.id and g.user.role != "admin":
        raise PermissionDeniedError("Only the creator can delete a household")

    db.delete_household(household_id)
    return jsonify({"success": True})


@households_bp.route("/<int:household_id>/members", methods=["GET"])
@require_session
@require_household_member
def list_members(household_id):
    return jsonify(db.list_members(household_id))


@households_bp.route("/<int:household_id>/members", methods=["POST"])
@require_session
@require_household_member
def add_member(household_id):
    """Adds a member without an account of their own, e.g. a child."""
    data = parse_body(MemberCreate)
    with transaction():
        member = db.add_member(household_id, data.member_name, photo_url=data.photo_url)
        activity_db.log_activity(
            household_id,
            g.member["id"],
            "member",
            "member_added",
            f'{member["member_name"]} was added to the household',
            related_item_id=member["id"],
        )
    return jsonify(member), 201


@households_bp.route("/<int:household_id>/members/<int:member_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_member(household_id, member_id):
    data = parse_body(MemberUpdate)
    require_member_of(household_id, member_id)

    fields = data.model_dump(exclude_unset=True)
    if "is_active" in fields:
        fields["is_active"] = int(fields["is_active"])

    with transaction():
        member = db.update_member(member_id, fields)
        activity_db.log_activity(
            household_id,
            g.member["id"],
            "member",
            "member_updated",
            f'{member["member_name"]} was updated',
            related_item_id=member_id,
            metadata={"fields": sorted(fields)},
        )
    return jsonify(member)
