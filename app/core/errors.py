"""
Domain errors raised by the booking services.

Every error carries a human-readable message (shown to admins, end users or
embedded in import issue rows) and the HTTP status the API maps it to.
"""


class BookingError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BookingError):
    status_code = 404
    default_message = "Not found"


class BookingNotFound(NotFound):
    default_message = "Booking not found"


class SlotNotFound(NotFound):
    default_message = "Schedule slot not found"


class QuestNotFound(NotFound):
    default_message = "Quest is not specified or does not exist"


class BlacklistEntryNotFound(NotFound):
    default_message = "Blacklist entry not found"


class Conflict(BookingError):
    status_code = 409
    default_message = "Conflict"


class SlotAlreadyBooked(Conflict):
    default_message = "The selected time is already booked"


class DuplicateLegacyId(Conflict):
    default_message = "Booking number is already in use"


class ValidationFailed(BookingError):
    status_code = 400
    default_message = "Invalid request"


class ParticipantsOutOfRange(ValidationFailed):
    default_message = "Participants count is out of the allowed range"


class BookingBlocked(BookingError):
    # Never say why: the blacklist contents must not leak
    status_code = 403
    default_message = "Booking is not available. Please contact us by phone."


class SignatureInvalid(BookingError):
    status_code = 401
    default_message = "Signature check failed"
