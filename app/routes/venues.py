from flask import Blueprint, current_app, request, jsonify
from app.middleware.auth import require_auth
from app.services.venue_service import VenueService
from app.utils.logger import get_logger
from app.utils.responses import failure_response

bp = Blueprint('venues', __name__)
logger = get_logger(__name__)


def _service() -> VenueService:
    return current_app.extensions['venue_service']


def _venue_summary(venue):
    return {
        'id': venue.id,
        'name': venue.name,
        'slug': venue.slug,
        'timezone': venue.zone_name,
        'public_booking_enabled': venue.public_booking_enabled,
        'availability': venue.availability or {},
        'weekly_sessions': venue.weekly_sessions or {},
    }


@bp.route('', methods=['POST'])
@require_auth
def create_venue(current_user):
    try:
        data = request.get_json(silent=True) or {}
        result = _service().create_venue(
            current_user['user_id'],
            data.get('name'),
            timezone=data.get('timezone'),
            availability=data.get('availability'),
            weekly_sessions=data.get('weekly_sessions'),
            public_booking_enabled=data.get('public_booking_enabled', True)
        )
        if not result.ok:
            return failure_response(result)
        return jsonify(_venue_summary(result.value)), 201
    except Exception as e:
        logger.error(f"Error creating venue: {str(e)}")
        return jsonify({'error': 'Failed to create venue'}), 500


@bp.route('/<int:venue_id>/availability-hours', methods=['PUT'])
@require_auth
def update_opening_hours(venue_id, current_user):
    try:
        result = _service().update_availability(current_user['user_id'], venue_id, request.get_json(silent=True))
        if not result.ok:
            return failure_response(result)
        return jsonify(_venue_summary(result.value)), 200
    except Exception as e:
        logger.error(f"Error updating opening hours: {str(e)}")
        return jsonify({'error': 'Failed to update opening hours'}), 500


@bp.route('/<int:venue_id>/sessions', methods=['PUT'])
@require_auth
def update_sessions(venue_id, current_user):
    try:
        result = _service().update_weekly_sessions(current_user['user_id'], venue_id, request.get_json(silent=True))
        if not result.ok:
            return failure_response(result)
        return jsonify(_venue_summary(result.value)), 200
    except Exception as e:
        logger.error(f"Error updating weekly sessions: {str(e)}")
        return jsonify({'error': 'Failed to update weekly sessions'}), 500


@bp.route('/<int:venue_id>/sync', methods=['GET'])
@require_auth
def get_sync_status(venue_id, current_user):
    result = _service().get_sync_status(current_user['user_id'], venue_id)
    if not result.ok:
        return failure_response(result)
    return jsonify(result.value), 200


@bp.route('/<int:venue_id>/sync', methods=['PUT'])
@require_auth
def update_sync_settings(venue_id, current_user):
    """Enable/disable sync, pick the calendar and direction"""
    try:
        data = request.get_json(silent=True) or {}
        result = _service().update_sync_settings(
            current_user['user_id'],
            venue_id,
            enabled=data.get('enabled'),
            calendar_id=data.get('calendar_id'),
            direction=data.get('direction')
        )
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value), 200
    except Exception as e:
        logger.error(f"Error updating sync settings: {str(e)}")
        return jsonify({'error': 'Failed to update sync settings'}), 500


@bp.route('/<int:venue_id>/sync/run', methods=['POST'])
@require_auth
def run_sync(venue_id, current_user):
    """Manual full sync"""
    try:
        status = _service().get_sync_status(current_user['user_id'], venue_id)
        if not status.ok:
            return failure_response(status)
        result = current_app.extensions['sync_service'].run_full_sync(venue_id)
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value), 200
    except Exception as e:
        logger.error(f"Error running sync: {str(e)}")
        return jsonify({'error': 'Failed to run sync'}), 500
