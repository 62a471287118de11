"""Exception hierarchy shared by the intake, runner and driver layers"""


class AutomationError(Exception):
    """Base class for every error raised by the incident automation"""
    def __init__(self, message="Automation error"):
        self.message = message
        super().__init__(self.message)


class IntakeError(AutomationError):
    """Raised synchronously at the boundary when a request is rejected"""


class SpreadsheetError(IntakeError):
    """Uploaded workbook could not be read or is malformed"""


class MissingCredentialsError(IntakeError):
    """Username or password missing from a start request"""
    def __init__(self, message="Credentials required: username and password"):
        super().__init__(message)


class EmptyBatchError(IntakeError):
    """Start requested with no pending records loaded"""
    def __init__(self, message="No pending records loaded"):
        super().__init__(message)


class BatchActiveError(IntakeError):
    """A batch is already running; the request would interfere with it"""
    def __init__(self, message="A batch is already being processed"):
        super().__init__(message)


class InvalidTransitionError(AutomationError):
    """A record status change would violate the record lifecycle"""


class DriverSessionError(AutomationError):
    """
    The external browser session is no longer usable.
    Raised by drivers for crashes (closed page, dead browser) so the runner
    can abort the batch instead of failing records one by one.
    """
    def __init__(self, message="Browser session lost"):
        super().__init__(message)
