"""
Health endpoints of the Household Manager service.
Unauthenticated so a supervisor process can poll them.
"""

from flask import Blueprint, jsonify

from src.health_monitor import health_monitor

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


@health_bp.route("", methods=["GET"])
def health_check():
    """
    Basic health check endpoint.
    Returns 503 when the service is in a critical state, 200 otherwise.
    """
    health_status = health_monitor.check_health()

    if health_status["status"] == "critical":
        return jsonify(health_status), 503
    return jsonify(health_status), 200


@health_bp.route("/detailed", methods=["GET"])
def detailed_health():
    """Health, database state and backups in one response."""
    return jsonify(
        {
            "health": health_monitor.check_health(),
            "database": health_monitor.get_database_status(),
            "backups": health_monitor.get_backup_status(),
        }
    )


@health_bp.route("/database", methods=["GET"])
def database_status():
    return jsonify(health_monitor.get_database_status())


@health_bp.route("/errors", methods=["GET"])
def error_summary():
    return jsonify(health_monitor.error_summary())


@health_bp.route("/monitoring/<state>", methods=["POST"])
def toggle_monitoring(state):
    states = {"enable": True, "disable": False}
    if state not in states:
        return jsonify({"error": f"Unknown monitoring state: {state}"}), 404

    health_monitor.set_monitoring(states[state])
    return jsonify({"status": "success", "monitoring_enabled": health_monitor.monitoring_enabled})


@health_bp.route("/errors/reset", methods=["POST"])
def reset_errors():
    health_monitor.reset()
    return jsonify({"status": "success", "total_errors": health_monitor.error_count})
