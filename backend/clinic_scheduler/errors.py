class SchedulerError(ValueError):
    """Base class for booking/domain errors raised by the service layer."""


class NotFoundError(SchedulerError):
    pass


class InvalidTransitionError(SchedulerError):
    pass


class SlotUnavailableError(SchedulerError):
    def __init__(self, message: str, reason: str | None = None, alternatives: list | None = None):
        super().__init__(message)
        self.reason = reason
        self.alternatives = alternatives or []
