"""Sprint analysis API endpoints."""

import logging

from flask import Blueprint, current_app, jsonify, request

from services.exceptions import SprintAnalysisError
from services.jira_payload import parse_date
from services.sprint_analysis import SprintAnalysisService

logger = logging.getLogger(__name__)

bp = Blueprint("sprints", __name__, url_prefix="/api/sprints")


def get_analysis_service():
    """Build an analysis service from the app's engine config."""
    return SprintAnalysisService(
        calendar=current_app.config.get("BUSINESS_CALENDAR"),
        max_workers=current_app.config.get("MAX_WORKERS", 8),
    )


@bp.route("/analyze", methods=["POST"])
def analyze_sprint():
    """Analyze one sprint from already-fetched tracker and CI data.

    Request body:
        - sprint: {name, start, end}
        - board: {columns, statusMap} or a Jira board configuration
        - issues: Jira issues with changelog (native or flat shape)
        - builds: Optional CI builds (flagged records or raw CI builds)

    Returns:
        - Classified issues with sprint timelines and column time
        - Sprint, release and DORA metrics
        - Daily cumulative points and issue counts per column
    """
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "Request body must be JSON"}), 400

    try:
        service = get_analysis_service()
        analysis = service.analyze_payload(payload, current_app.config.get("TIMEZONE"))
        return jsonify({"data": analysis.to_dict()})
    except SprintAnalysisError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Sprint analysis failed")
        return jsonify({"error": str(e)}), 500


@bp.route("/business-days", methods=["POST"])
def business_days():
    """Elapsed business days between two timestamps.

    Request body:
        - start: ISO timestamp
        - end: ISO timestamp
    """
    payload = request.get_json(silent=True) or {}
    tz = current_app.config.get("TIMEZONE")

    start = parse_date(payload.get("start"), tz)
    end = parse_date(payload.get("end"), tz)
    if start is None or end is None:
        return jsonify({"error": "Missing or invalid start/end"}), 400

    calendar = current_app.config.get("BUSINESS_CALENDAR")
    return jsonify({"data": {"businessDays": calendar.elapsed_business_days(start, end)}})
