class SchedulerError(Exception):
    """Base class for scheduler errors."""


class ConfigurationError(SchedulerError):
    """A schedule, resource or account entry cannot be used as configured."""


class CredentialError(SchedulerError):
    def __init__(self, message, account_id=None, region=None):
        super().__init__(message)
        self.account_id = account_id
        self.region = region


class ScheduleNotFoundError(SchedulerError):
    pass
