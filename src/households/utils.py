import logging
import secrets
from functools import wraps

from flask import g

from src.activities import database as activity_db
from src.database import transaction
from src.errors import ConflictError, NotFoundError, PermissionDeniedError
from src.shopping_app import database as shopping_db

from . import database as db

logger = logging.getLogger(__name__)

# No 0/O or 1/I so codes can be read out loud
INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8
INVITE_CODE_ATTEMPTS = 10


def generate_invite_code() -> str:
    return "".join(
        secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH)
    )


def generate_unique_invite_code() -> str:
    for _ in range(INVITE_CODE_ATTEMPTS):
        invite_code = generate_invite_code()
        if not db.invite_code_exists(invite_code):
            return invite_code
    raise ConflictError("Could not generate a unique invite code, please retry")


def create_household(name: str, user) -> dict:
    """
    Creates a household with the user as its first member and seeds the
    default shopping categories.

    Returns:
        dict: the household plus the creator's member context
    """
    with transaction():
        household_id = db.insert_household(name, generate_unique_invite_code(), user.id)
        member = db.add_member(household_id, user.name, user_id=user.id)
        shopping_db.create_default_categories(household_id)
        activity_db.log_activity(
            household_id,
            member["id"],
            "member",
            "household_created",
            f'Household "{name}" created',
        )

    logger.info(f"User {user.id} created household {household_id}")
    household = db.get_household(household_id)
    return {"household": household, "member": member}


def join_household(invite_code: str, user, member_name: str = None) -> dict:
    """Adds the user to the household owning the invite code."""
    household = db.get_household_by_invite_code(invite_code)
    if household is None:
        raise NotFoundError("Invalid invite code")

    with transaction():
        membership = db.get_membership(household["id"], user.id)
        if membership and membership["is_active"]:
            raise ConflictError("You are already a member of this household")

        if membership:
            member = db.update_member(membership["id"], {"is_active": 1})
            action = "member_rejoined"
        else:
            member = db.add_member(
                household["id"], member_name or user.name, user_id=user.id
            )
            action = "member_joined"

        activity_db.log_activity(
            household["id"],
            member["id"],
            "member",
            action,
            f'{member["member_name"]} joined the household',
        )

    logger.info(f"User {user.id} joined household {household['id']}")
    return {"household": db.get_household(household["id"]), "member": member}


def get_active_membership(household_id: int, user) -> dict:
    """The caller's active membership, or the error the API should answer with."""
    household = db.get_household(household_id)
    if household is None:
        raise NotFoundError("Household not found")

    membership = db.get_membership(household_id, user.id)
    if membership is None or not membership["is_active"]:
        raise PermissionDeniedError("You are not a member of this household")
    return membership


def require_household_member(f):
    """
    Decorator for routes taking a household_id: the signed-in user must be an
    active member. The membership is stored on g.member.

    Must be applied below require_session.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.member = get_active_membership(kwargs["household_id"], g.user)
        return f(*args, **kwargs)

    return decorated_function


def require_member_of(household_id: int, member_id: int) -> dict:
    """Look up a member and make sure it belongs to the household."""
    member = db.get_member(member_id)
    if member is None or member["household_id"] != household_id:
        raise NotFoundError(f"Member {member_id} not found in this household")
    return member


def validate_member_ids(household_id: int, member_ids: list[int]) -> list[int]:
    """Deduplicate member ids, keeping order, and check they belong to the household."""
    unique_ids = list(dict.fromkeys(member_ids))
    for member_id in unique_ids:
        require_member_of(household_id, member_id)
    return unique_ids
