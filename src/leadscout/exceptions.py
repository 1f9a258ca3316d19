"""Custom exception hierarchy for LeadScout."""


class LeadScoutError(Exception):
    """Base exception for all LeadScout errors."""


class JobValidationError(LeadScoutError):
    """Raised when a job configuration, stage list or payload is malformed."""


class StageTimeoutError(LeadScoutError):
    """Raised when a stage exceeds its deadline."""


class DriverError(LeadScoutError):
    """Raised when the automation driver fails or returns unusable output."""


class SessionExpiredError(DriverError):
    """Raised when the target site redirects to its login wall."""


class CaptureError(LeadScoutError):
    """Raised when the media sink cannot store a screenshot or video."""


class BrowserLaunchError(LeadScoutError):
    """Raised when the browser fails to start."""


class ConfigurationError(LeadScoutError):
    """Raised when settings are invalid or missing."""


class UnknownJobError(LeadScoutError):
    """Raised when a job identifier was never submitted."""
