"""Domain exceptions raised by services and translated to HTTP responses in main."""


class ServiceError(Exception):
    """Base class for expected service failures."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "HTTP_404"


class ConflictError(ServiceError):
    status_code = 409
    error_code = "HTTP_409"


class InvalidRequestError(ServiceError):
    status_code = 400
    error_code = "HTTP_400"


class OnboardingError(ServiceError):
    """Final-step profile derivation failed; nothing was committed."""

    status_code = 500
    error_code = "ONBOARDING_FAILED"


class UpstreamError(ServiceError):
    status_code = 502
    error_code = "UPSTREAM_ERROR"


class AIServiceError(UpstreamError):
    """The generative AI provider failed for a reason other than rate limiting."""


class ClinicalTrialsError(UpstreamError):
    """ClinicalTrials.gov could not be queried."""
