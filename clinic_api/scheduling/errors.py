# clinic_api/scheduling/errors.py


class SchedulingError(Exception):
    """Base for every failure the scheduling core reports."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInterval(SchedulingError):
    pass


class PractitionerUnavailable(SchedulingError):
    pass


class SchedulingConflict(SchedulingError):
    def __init__(self, message: str, conflicting_id=None):
        super().__init__(message)
        self.conflicting_id = conflicting_id


class IllegalTransition(SchedulingError):
    def __init__(self, message: str, status=None):
        super().__init__(message)
        self.status = status
