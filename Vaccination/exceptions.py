"""Typed failures raised by the vaccination engine.

Views translate them into JSON responses using ``status_code``. Raising any of
them inside ``transaction.atomic()`` rolls the whole operation back.
"""


class VaccinationError(Exception):
    status_code = 400
    default_message = "Vaccination operation failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(VaccinationError):
    status_code = 404
    default_message = "Resource not found"


class Forbidden(VaccinationError):
    status_code = 403
    default_message = "Access denied"


class ValidationFailed(VaccinationError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(VaccinationError):
    status_code = 409
    default_message = (
        "An appointment already exists for this child with this vaccine and dose. "
        "Change the date or pick another vaccine."
    )


class ResourceExhausted(VaccinationError):
    status_code = 400
    default_message = "Insufficient stock for this vaccine"


class PreconditionFailed(VaccinationError):
    status_code = 400
    default_message = "The appointment cannot be completed before its scheduled date and time"
