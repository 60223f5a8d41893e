from flask import Blueprint, current_app, request, jsonify
from app.middleware.auth import require_auth
from app.services.reservation_service import ReservationService
from app.utils.logger import get_logger
from app.utils.responses import failure_response

bp = Blueprint('reservations', __name__)
logger = get_logger(__name__)


def _service() -> ReservationService:
    return current_app.extensions['reservation_service']


def _respond(result, success_code=200):
    if not result.ok:
        return failure_response(result)
    return jsonify(result.value), success_code


@bp.route('/venues/<int:venue_id>/booking-requests', methods=['POST'])
def request_booking(venue_id):
    """Public booking request"""
    try:
        data = request.get_json(silent=True) or {}
        return _respond(_service().request_booking(venue_id, data), 201)
    except Exception as e:
        logger.error(f"Error creating booking request: {str(e)}")
        return jsonify({'error': 'Failed to submit booking request'}), 500


@bp.route('/venues/<int:venue_id>/reservations', methods=['GET'])
@require_auth
def list_reservations(venue_id, current_user):
    try:
        result = _service().list_reservations(current_user['user_id'], venue_id, request.args.get('status'))
        return _respond(result)
    except Exception as e:
        logger.error(f"Error listing reservations: {str(e)}")
        return jsonify({'error': 'Failed to list reservations'}), 500


@bp.route('/venues/<int:venue_id>/reservations', methods=['POST'])
@require_auth
def create_reservation(venue_id, current_user):
    """Owner booking, confirmed on creation"""
    try:
        data = request.get_json(silent=True) or {}
        return _respond(_service().create_reservation(current_user['user_id'], venue_id, data), 201)
    except Exception as e:
        logger.error(f"Error creating reservation: {str(e)}")
        return jsonify({'error': 'Failed to create reservation'}), 500


@bp.route('/reservations/<int:reservation_id>', methods=['GET'])
@require_auth
def get_reservation(reservation_id, current_user):
    try:
        return _respond(_service().get_reservation(current_user['user_id'], reservation_id))
    except Exception as e:
        logger.error(f"Error getting reservation: {str(e)}")
        return jsonify({'error': 'Failed to get reservation'}), 500


@bp.route('/reservations/<int:reservation_id>', methods=['PUT'])
@require_auth
def update_reservation(reservation_id, current_user):
    try:
        data = request.get_json(silent=True) or {}
        return _respond(_service().update_reservation(current_user['user_id'], reservation_id, data))
    except Exception as e:
        logger.error(f"Error updating reservation: {str(e)}")
        return jsonify({'error': 'Failed to update reservation'}), 500


@bp.route('/reservations/<int:reservation_id>/<action>', methods=['POST'])
@require_auth
def change_status(reservation_id, action, current_user):
    """Approve, decline or cancel"""
    try:
        service = _service()
        handlers = {
            'approve': service.approve_reservation,
            'decline': service.decline_reservation,
            'cancel': service.cancel_reservation,
        }
        if action not in handlers:
            return jsonify({'error': 'Unknown action'}), 404
        return _respond(handlers[action](current_user['user_id'], reservation_id))
    except Exception as e:
        logger.error(f"Error applying {action} to reservation: {str(e)}")
        return jsonify({'error': 'Failed to update reservation'}), 500


@bp.route('/reservations/<int:reservation_id>', methods=['DELETE'])
@require_auth
def delete_reservation(reservation_id, current_user):
    try:
        return _respond(_service().delete_reservation(current_user['user_id'], reservation_id))
    except Exception as e:
        logger.error(f"Error deleting reservation: {str(e)}")
        return jsonify({'error': 'Failed to delete reservation'}), 500
