from fastapi import status


class AssistantError(Exception):
    """Base error for the assistant service. Rendered as {"error": message}."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(AssistantError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ValidationError(AssistantError):
    status_code = status.HTTP_400_BAD_REQUEST


class TripNotFoundError(AssistantError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(AssistantError):
    status_code = status.HTTP_502_BAD_GATEWAY


class ProposalStateError(AssistantError):
    pass


class ProposalGoneError(ProposalStateError):
    status_code = status.HTTP_410_GONE


class ProposalForbiddenError(ProposalStateError):
    status_code = status.HTTP_403_FORBIDDEN


class MutationError(AssistantError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UnknownToolError(ValueError):
    pass
