"""
VERDICT Error Taxonomy
======================
Every failure the finalize path can surface is a distinct class, so callers
can tell a missing credential from an interview that was cut short.
"""


class VerdictError(Exception):
    """Base class for all VERDICT errors."""

    code = "verdict_error"


class SessionNotFoundError(VerdictError):
    code = "not_found"


class SessionAlreadyCompletedError(VerdictError):
    """Raised when a completed session is finalized a second time."""

    code = "already_completed"


class ConfigurationError(VerdictError):
    """No scoring credential and nothing usable to score from."""

    code = "configuration_error"


class IncompleteInterviewError(VerdictError):
    """The transcript does not cover enough of the configured questions."""

    code = "incomplete_interview"

    def __init__(self, message: str, detected: int = 0, configured: int = 0):
        super().__init__(message)
        self.detected = detected
        self.configured = configured


class ScoringServiceError(VerdictError):
    """The hosted scoring service could not be reached or kept failing."""

    code = "scoring_unavailable"


class ScoringCredentialError(ScoringServiceError):
    """The scoring service rejected the tenant credential."""

    code = "credential_rejected"


class MalformedPayloadError(VerdictError):
    """An upstream evaluation payload could not be parsed into a known shape."""

    code = "malformed_payload"
