import logging

from flask import Blueprint, g, jsonify

from src.activities import database as activity_db
from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.schemas import parse_args, parse_body

from . import database as db
from . import utils
from .schemas import (
    CompleteRequest,
    DateRequest,
    DependencyRequest,
    MilestoneRequest,
    OccurrenceItemCreate,
    OccurrenceItemUpdate,
    OccurrenceQuery,
    ReminderRequest,
    RotationAutofillRequest,
    RotationExtendRequest,
    RotationScheduleRequest,
    TaskCreate,
    TaskUpdate,
    ToggleRequest,
)

logger = logging.getLogger(__name__)

tasks_bp = Blueprint(
    "tasks", __name__, url_prefix="/api/households/<int:household_id>/tasks"
)


@tasks_bp.route("", methods=["GET"])
@require_session
@require_household_member
def list_tasks(household_id):
    """Open tasks first, then by due date."""
    return jsonify([utils.task_details(task) for task in db.list_tasks(household_id)])


@tasks_bp.route("", methods=["POST"])
@require_session
@require_household_member
def create_task(household_id):
    data = parse_body(TaskCreate)
    task = utils.create_task(household_id, g.member, data)
    return jsonify(utils.task_details(task)), 201


@tasks_bp.route("/dependencies", methods=["GET"])
@require_session
@require_household_member
def list_dependencies(household_id):
    """Every ordering link in the household."""
    return jsonify(
        [
            {"task_id": task_id, "depends_on_task_id": depends_on_task_id}
            for task_id, depends_on_task_id in db.list_dependency_edges(household_id)
        ]
    )


@tasks_bp.route("/<int:task_id>", methods=["GET"])
@require_session
@require_household_member
def get_task(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    return jsonify(utils.task_details(task))


@tasks_bp.route("/<int:task_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_task(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(TaskUpdate)
    task = utils.update_task(task, g.member, data)
    return jsonify(utils.task_details(task))


@tasks_bp.route("/<int:task_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_task(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    utils.delete_task(task, g.member)
    return jsonify({"success": True})


# --- Completion ---


@tasks_bp.route("/<int:task_id>/complete", methods=["POST"])
@require_session
@require_household_member
def complete_task(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(CompleteRequest)
    result = utils.complete_task(
        task, g.member, data.comment, data.photo_urls, force=data.force
    )
    return jsonify(result)


@tasks_bp.route("/<int:task_id>/toggle", methods=["POST"])
@require_session
@require_household_member
def toggle_task(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(ToggleRequest)
    if data.is_completed:
        return jsonify(utils.complete_task(task, g.member, force=data.force))
    task = utils.reopen_task(task, g.member)
    return jsonify({"task": task.to_dict(), "next_due_date": None})


@tasks_bp.route("/<int:task_id>/undo-completion", methods=["POST"])
@require_session
@require_household_member
def undo_completion(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    task = utils.undo_completion(task, g.member)
    return jsonify(utils.task_details(task))


@tasks_bp.route("/<int:task_id>/skip", methods=["POST"])
@require_session
@require_household_member
def skip_occurrence(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(DateRequest)
    task = utils.skip_occurrence(task, g.member, data.date)
    return jsonify(task.to_dict())


@tasks_bp.route("/<int:task_id>/restore", methods=["POST"])
@require_session
@require_household_member
def restore_occurrence(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(DateRequest)
    task = utils.restore_occurrence(task, g.member, data.date)
    return jsonify(task.to_dict())


# --- History ---


@tasks_bp.route("/<int:task_id>/activities", methods=["GET"])
@require_session
@require_household_member
def task_activities(household_id, task_id):
    utils.require_task(household_id, task_id)
    return jsonify(activity_db.list_task_activities(household_id, task_id))


@tasks_bp.route("/<int:task_id>/milestone", methods=["POST"])
@require_session
@require_household_member
def add_milestone(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(MilestoneRequest)
    activity_id = utils.add_milestone(
        task, g.member, data.comment, data.photo_urls, data.file_urls
    )
    return jsonify({"activity_id": activity_id}), 201


@tasks_bp.route("/<int:task_id>/reminder", methods=["POST"])
@require_session
@require_household_member
def send_reminder(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(ReminderRequest)
    return jsonify(utils.send_reminder(task, g.member, data.comment))


@tasks_bp.route("/<int:task_id>/occurrences", methods=["GET"])
@require_session
@require_household_member
def upcoming(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    query = parse_args(OccurrenceQuery)
    return jsonify(utils.upcoming_with_assignees(task, query.count))


# --- Rotation plan ---


@tasks_bp.route("/<int:task_id>/rotation", methods=["GET"])
@require_session
@require_household_member
def get_rotation(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    return jsonify(
        {
            "task_id": task.id,
            "enable_rotation": task.enable_rotation,
            "excluded_members": db.get_exclusions(task.id),
            "schedule": db.get_rotation_schedule(task.id),
        }
    )


@tasks_bp.route("/<int:task_id>/rotation", methods=["PUT"])
@require_session
@require_household_member
def replace_rotation(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(RotationScheduleRequest)
    schedule = utils.replace_rotation(task, data.model_dump()["schedule"])
    return jsonify({"task_id": task.id, "schedule": schedule})


@tasks_bp.route("/<int:task_id>/rotation/extend", methods=["POST"])
@require_session
@require_household_member
def extend_rotation(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(RotationExtendRequest)
    schedule = utils.extend_rotation(
        task, [slot.model_dump() for slot in data.members], data.notes
    )
    return jsonify({"task_id": task.id, "schedule": schedule})


@tasks_bp.route("/<int:task_id>/rotation/autofill", methods=["POST"])
@require_session
@require_household_member
def autofill_rotation(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(RotationAutofillRequest)
    schedule = utils.autofill_rotation(task, data.count, data.slots)
    return jsonify({"task_id": task.id, "schedule": schedule})


# --- Occurrence items ---


@tasks_bp.route("/<int:task_id>/items", methods=["GET"])
@require_session
@require_household_member
def list_all_occurrence_items(household_id, task_id):
    """Items of every occurrence, ordered by occurrence number."""
    task = utils.require_task(household_id, task_id)
    return jsonify(db.list_occurrence_items(task.id))


@tasks_bp.route("/<int:task_id>/occurrences/<int:occurrence_number>/items", methods=["GET"])
@require_session
@require_household_member
def list_occurrence_items(household_id, task_id, occurrence_number):
    task = utils.require_task(household_id, task_id)
    utils.check_occurrence_number(occurrence_number)
    return jsonify(db.list_occurrence_items(task.id, occurrence_number))


@tasks_bp.route("/<int:task_id>/occurrences/<int:occurrence_number>/items", methods=["POST"])
@require_session
@require_household_member
def add_occurrence_item(household_id, task_id, occurrence_number):
    task = utils.require_task(household_id, task_id)
    data = parse_body(OccurrenceItemCreate)
    link = utils.add_occurrence_item(task, g.member, occurrence_number, data)
    return jsonify(link), 201


@tasks_bp.route(
    "/<int:task_id>/occurrences/<int:occurrence_number>/items/<int:link_id>", methods=["PATCH"]
)
@require_session
@require_household_member
def update_occurrence_item(household_id, task_id, occurrence_number, link_id):
    """Borrow window, borrow status, linked borrow request and notes."""
    task = utils.require_task(household_id, task_id)
    link = utils.require_occurrence_item(task, occurrence_number, link_id)
    data = parse_body(OccurrenceItemUpdate)
    return jsonify(utils.update_occurrence_item(task, link, data))


@tasks_bp.route(
    "/<int:task_id>/occurrences/<int:occurrence_number>/items/<int:link_id>", methods=["DELETE"]
)
@require_session
@require_household_member
def remove_occurrence_item(household_id, task_id, occurrence_number, link_id):
    task = utils.require_task(household_id, task_id)
    link = utils.require_occurrence_item(task, occurrence_number, link_id)
    db.delete_occurrence_item(link["id"])
    return jsonify({"success": True})


# --- Dependencies ---


@tasks_bp.route("/<int:task_id>/dependencies", methods=["GET"])
@require_session
@require_household_member
def get_dependencies(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    return jsonify(
        {
            "prerequisites": db.get_prerequisites(task.id),
            "followups": db.get_followups(task.id),
        }
    )


@tasks_bp.route("/<int:task_id>/dependencies", methods=["POST"])
@require_session
@require_household_member
def add_dependencies(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(DependencyRequest)
    utils.add_dependencies(task, data.prerequisites, data.followups)
    return jsonify(
        {
            "prerequisites": db.get_prerequisites(task.id),
            "followups": db.get_followups(task.id),
        }
    )


@tasks_bp.route("/<int:task_id>/dependencies", methods=["PUT"])
@require_session
@require_household_member
def replace_dependencies(household_id, task_id):
    task = utils.require_task(household_id, task_id)
    data = parse_body(DependencyRequest)
    utils.replace_dependencies(task, data.prerequisites, data.followups)
    return jsonify(
        {
            "prerequisites": db.get_prerequisites(task.id),
            "followups": db.get_followups(task.id),
        }
    )
