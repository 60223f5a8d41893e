from flask import Blueprint, current_app, request, jsonify
from app.middleware.auth import require_auth
from app.services.calendar_service import CalendarService
from app.utils.logger import get_logger
from app.utils.responses import failure_response

bp = Blueprint('calendar', __name__)
logger = get_logger(__name__)


def _service() -> CalendarService:
    return current_app.extensions['calendar_service']


@bp.route('/connect', methods=['POST'])
@require_auth
def connect(current_user):
    """Store an OAuth grant: an authorization code or raw tokens"""
    try:
        result = _service().connect_calendar(current_user['user_id'], request.get_json(silent=True) or {})
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value), 200
    except Exception as e:
        logger.error(f"Error connecting calendar: {str(e)}")
        return jsonify({'error': 'Failed to connect calendar'}), 500


@bp.route('/disconnect', methods=['POST'])
@require_auth
def disconnect(current_user):
    try:
        result = _service().disconnect_calendar(current_user['user_id'])
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value), 200
    except Exception as e:
        logger.error(f"Error disconnecting calendar: {str(e)}")
        return jsonify({'error': 'Failed to disconnect calendar'}), 500


@bp.route('/calendars', methods=['GET'])
@require_auth
def list_calendars(current_user):
    try:
        result = _service().list_calendars(current_user['user_id'])
        if not result.ok:
            return failure_response(result)
        return jsonify({'calendars': result.value}), 200
    except Exception as e:
        logger.error(f"Error listing calendars: {str(e)}")
        return jsonify({'error': 'Failed to list calendars'}), 500


@bp.route('/status', methods=['GET'])
@require_auth
def connection_status(current_user):
    return jsonify({'connected': _service().is_connected(current_user['user_id'])}), 200
