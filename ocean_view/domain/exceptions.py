"""Domain Exceptions

Services raise these; the HTTP layer maps each family to a status code.
Only TransientStoreError is retried automatically.
"""


class ReservationSystemError(Exception):
    """Base class for all reservation system errors"""


class ValidationError(ReservationSystemError, ValueError):
    """Malformed input: bad date range, unknown reference, bad amount"""


class ConflictError(ReservationSystemError):
    """Room is already booked for the requested dates"""


class NotFoundError(ReservationSystemError, LookupError):
    """Referenced record does not exist"""


class InvalidStateError(ReservationSystemError):
    """Operation is not allowed from the current lifecycle state"""


class DuplicateError(InvalidStateError):
    """A record that must be unique already exists"""


class TransientStoreError(ReservationSystemError):
    """Store could not complete the transaction (lock timeout, serialization conflict)"""


class StoreUnavailableError(ReservationSystemError):
    """Transient store failures persisted after all retries"""
