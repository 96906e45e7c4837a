class CollectorError(Exception):
    """Base class for every error raised by the collector core."""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {"message": self.message}


class NotFound(CollectorError):
    """Resource not found"""

    status_code = 404


class Unauthorized(CollectorError):
    """Authentication required"""

    status_code = 401


class Forbidden(CollectorError):
    """You are not allowed to perform this action"""

    status_code = 403


class InvalidRequest(CollectorError):
    """Invalid request"""

    status_code = 400


class Conflict(CollectorError):
    """Resource already exists"""

    status_code = 409


class InvalidState(CollectorError):
    """Operation not allowed in the current state"""

    status_code = 400


class InvalidTransition(InvalidState):
    """Status transition not allowed"""
