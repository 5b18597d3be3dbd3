"""
Domain errors raised by the consultation coordinator and doctor search.
Routers translate them into HTTP responses.
"""


class ConsultationError(Exception):
    """Base exception for consultation failures"""
    pass


class ValidationError(ConsultationError):
    """Empty or malformed input (message, invitee list, reply text, query)"""
    pass


class NotFoundError(ConsultationError):
    """Unknown consultation, patient or doctor, or caller is not a participant"""
    pass


class AccessDeniedError(ConsultationError):
    """Caller is not allowed to view or modify this consultation"""
    pass


class UnexpectedError(ConsultationError):
    """Persistence failure; details are logged, never shown to the caller"""
    pass
