from flask import jsonify
from app.utils.errors import ErrorKind
from app.utils.result import Failure

STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.SYNC_IN_PROGRESS: 409,
    ErrorKind.SYNC_DISABLED: 409,
    ErrorKind.TRANSIENT_EXTERNAL: 502,
    ErrorKind.STORE_ERROR: 503,
}


def failure_response(failure: Failure):
    """JSON error body and status code for a failed service result"""
    body = {'error': failure.message or failure.error.value, 'kind': failure.error.value}
    if failure.error == ErrorKind.CONFLICT and failure.detail:
        body['conflicts'] = failure.detail
    return jsonify(body), STATUS_CODES.get(failure.error, 500)
