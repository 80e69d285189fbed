"""
Error types raised by the scoring services.

Every failure the scoring engine reports is a ProdeError subclass carrying a
stable ``code`` and the HTTP status the API answers with, so callers can
dispatch on the class instead of probing response fields.
"""


class ProdeError(Exception):
    """Base class for scoring and leaderboard failures"""

    code = "prode_error"
    status_code = 500

    def __init__(self, message=None, **details):
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        data = {"error": self.message, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(ProdeError):
    """Referenced record does not exist"""

    code = "not_found"
    status_code = 404


class MatchNotFoundError(NotFoundError):
    code = "match_not_found"

    def __init__(self, match_id):
        super().__init__(f"Match {match_id} not found", match_id=match_id)


class UserNotFoundError(NotFoundError):
    code = "user_not_found"

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found", user_id=user_id)


class InvalidStateError(ProdeError):
    """Operation not allowed in the record's current state"""

    code = "invalid_state"
    status_code = 409


class InvalidMatchStateError(InvalidStateError):
    code = "invalid_match_state"


class MatchLockedError(InvalidStateError):
    code = "match_locked"

    def __init__(self, match_id):
        super().__init__(
            f"Match {match_id} is locked, predictions can no longer change",
            match_id=match_id,
        )


class MalformedPredictionError(ProdeError):
    """Prediction is missing a valid predicted score"""

    code = "malformed_prediction"
    status_code = 422

    def __init__(self, prediction_id, reason):
        super().__init__(
            f"Prediction {prediction_id} is malformed: {reason}",
            prediction_id=prediction_id,
        )


class PersistenceError(ProdeError):
    """Storage failed, the transaction was rolled back"""

    code = "persistence_failure"
    status_code = 503
