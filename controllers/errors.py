class SurveyError(Exception):
    """Base for failures that map onto an HTTP status at the request boundary."""
    status_code = 500
    message = 'Server error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(SurveyError):
    status_code = 400
    message = 'Invalid request data'


class AuthenticationError(SurveyError):
    status_code = 401
    message = 'Invalid credentials'


class GateError(SurveyError):
    """Rejected by the submission gate (origin, session or rate limit)."""
    status_code = 403


class OriginError(GateError):
    status_code = 403
    message = 'Request must come from browser'


class SessionError(GateError):
    status_code = 401
    message = 'Session expired, please restart the survey'


class RateLimitError(GateError):
    status_code = 429
    message = 'Too many submissions, please try again later'

    def __init__(self, retry_after, message=None):
        super().__init__(message)
        self.retry_after = int(retry_after)

    def to_dict(self):
        data = super().to_dict()
        data['retryAfter'] = self.retry_after
        return data


class NotFoundError(SurveyError):
    status_code = 404
    message = 'Not found'


class ConflictError(SurveyError):
    status_code = 409
    message = 'Conflict'


class StorageError(SurveyError):
    status_code = 500
    message = 'Database error'
