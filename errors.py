"""
errors.py - Grading Engine Errors
Every failure the engine reports to a caller. Each error knows the HTTP
status the blueprints answer with.
"""


class GradingError(Exception):
    """Base class for caller-visible engine failures"""
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'success': False, 'error': self.message}


class NotFound(GradingError):
    """Not found"""
    status_code = 404


class NotAuthorized(GradingError):
    """Not authorized"""
    status_code = 403


class AccessDenied(NotAuthorized):
    """Access denied"""


class EnrollmentRequired(GradingError):
    """Student is not enrolled in this class"""
    status_code = 403


class InvalidState(GradingError):
    """Operation not allowed in the current state"""
    status_code = 409


class ValidationError(GradingError):
    """Invalid input"""
    status_code = 400
