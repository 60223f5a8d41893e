from datetime import date
from flask import Blueprint, request, jsonify
from app.database import DatabaseManager
from app.middleware.auth import optional_auth
from app.models import Venue
from app.services.availability_service import AvailabilityService
from app.utils.errors import ValidationError
from app.utils.logger import get_logger
from app.utils.responses import failure_response
from app.utils.timeutils import parse_iso_datetime

bp = Blueprint('availability', __name__)
logger = get_logger(__name__)
availability_service = AvailabilityService()
venue_db = DatabaseManager(Venue)


def _is_owner(venue, current_user) -> bool:
    return bool(current_user) and venue.owner_id == current_user.get('user_id')


@bp.route('/<int:venue_id>/availability', methods=['GET'])
@optional_auth
def check_availability(venue_id, current_user):
    """Is the venue free for an interval; titles are redacted unless the owner asks"""
    try:
        venue = venue_db.get(venue_id)
        if not venue:
            return jsonify({'error': 'Venue not found'}), 404

        try:
            start = parse_iso_datetime(request.args.get('start'), venue.zone_name)
            end = parse_iso_datetime(request.args.get('end'), venue.zone_name)
            exclude = request.args.get('exclude_reservation_id', type=int)
        except ValidationError as e:
            return jsonify({'error': e.message}), 400

        result = availability_service.check_availability(
            venue_id, start, end,
            exclude_reservation_id=exclude,
            owner_scope=_is_owner(venue, current_user)
        )
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value.to_dict()), 200

    except Exception as e:
        logger.error(f"Error checking availability: {str(e)}")
        return jsonify({'error': 'Failed to check availability'}), 500


@bp.route('/<int:venue_id>/blocked-slots', methods=['GET'])
@optional_auth
def get_blocked_slots(venue_id, current_user):
    """Occupied slots on one date in the venue's timezone"""
    try:
        venue = venue_db.get(venue_id)
        if not venue:
            return jsonify({'error': 'Venue not found'}), 404

        try:
            on_date = date.fromisoformat(request.args.get('date', ''))
        except ValueError:
            return jsonify({'error': 'date must be YYYY-MM-DD'}), 400

        result = availability_service.get_blocked_slots(venue_id, on_date, owner_scope=_is_owner(venue, current_user))
        if not result.ok:
            return failure_response(result)
        return jsonify(result.value), 200

    except Exception as e:
        logger.error(f"Error loading blocked slots: {str(e)}")
        return jsonify({'error': 'Failed to load blocked slots'}), 500
