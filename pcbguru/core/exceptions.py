"""Custom exceptions for the application."""


class ApplicationError(Exception):
    """Base application error.

    ``user_message`` is the text shown to the user; ``str(exc)`` may carry
    more technical detail for the logs.
    """

    default_message = "An unexpected error occurred."

    def __init__(self, message: str = "", user_message: str = ""):
        super().__init__(message or user_message or self.default_message)
        self.user_message = user_message or message or self.default_message


class ConfigurationError(ApplicationError):
    """Credential or configuration missing for the attempted operation."""
    default_message = "API_KEY environment variable not set."


class ServiceError(ApplicationError):
    """Transport, auth or rate-limit failure from the remote model."""
    default_message = "Failed to analyze PCB image. Please try again."


class MalformedResponse(ApplicationError):
    """Remote reply was not JSON or lacked required top-level keys."""
    default_message = "AI returned invalid data format. Please try again."


class ValidationError(ApplicationError):
    """Data validation errors."""
    pass


class ExportError(ApplicationError):
    """Report or BOM generation failure.

    ``kind`` is ``"screenshot_failed"`` when the overlay could not be
    rasterized, ``"bom_failed"`` when the BOM could not be saved and
    ``"report_failed"`` otherwise.
    """

    SCREENSHOT_FAILED = "screenshot_failed"
    REPORT_FAILED = "report_failed"
    BOM_FAILED = "bom_failed"

    default_message = "Could not generate PDF report."

    def __init__(self, message: str = "", kind: str = REPORT_FAILED, user_message: str = ""):
        if not user_message and kind == self.SCREENSHOT_FAILED:
            user_message = "Screenshot failed - could not render the analysis overlay."
        elif not user_message and kind == self.BOM_FAILED:
            user_message = "Could not save BOM file."
        super().__init__(message, user_message)
        self.kind = kind
