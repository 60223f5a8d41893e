import enum


class ErrorKind(enum.Enum):
    VALIDATION = "validation"
    TRANSIENT_EXTERNAL = "transient_external"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORE_ERROR = "store_error"
    SYNC_DISABLED = "sync_disabled"
    SYNC_IN_PROGRESS = "sync_in_progress"


class SyncStatus(enum.Enum):
    """Advisory outcome of the calendar sync attached to a reservation write"""
    SYNCED = "synced"
    NOT_SYNCED = "not_synced"
    SYNC_DISABLED = "sync_disabled"
    NO_CREDENTIALS = "no_credentials"
    SYNC_FAILED = "sync_failed"
    EVENT_DELETED_EXTERNALLY = "event_deleted_externally"
    DEFERRED = "deferred"
    SYNC_ERROR = "sync_error"


class ScoutBookingsError(Exception):
    kind = None

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(ScoutBookingsError):
    """Bad input; rejected synchronously and never retried"""
    kind = ErrorKind.VALIDATION


class TransientExternalError(ScoutBookingsError):
    """Network failure, rate limit or 5xx from an external service"""
    kind = ErrorKind.TRANSIENT_EXTERNAL


class AuthError(ScoutBookingsError):
    """Credential rejected by the external service"""
    kind = ErrorKind.AUTH


class NotFoundError(ScoutBookingsError):
    kind = ErrorKind.NOT_FOUND
