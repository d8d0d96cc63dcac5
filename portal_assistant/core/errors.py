"""Error taxonomy for the assistant pipeline.

Only AuthenticationError, ConfigurationError and QuotaError leave the
pipeline as non-200 responses. Everything else is converted into a
displayable message before it reaches the caller.
"""


class AssistantError(Exception):
    """Base class for assistant errors carrying a user-facing message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(AssistantError):
    """No valid caller session."""


class ConfigurationError(AssistantError):
    """LLM credential missing or rejected by the provider."""


class QuotaError(AssistantError):
    """Upstream billing or rate limit exceeded."""


class UpstreamError(AssistantError):
    """Transient provider/network failure. Safe to retry."""


class AssistantTimeoutError(AssistantError):
    """The turn exceeded its time budget."""


class ParseError(AssistantError):
    """Model output was not a valid action payload."""


class ExtractionError(AssistantError):
    """An attachment could not be fetched, parsed or transcribed."""

    def __init__(self, message: str, extractor: str | None = None):
        super().__init__(message)
        self.extractor = extractor


class MutationError(AssistantError):
    """A data-store write failed."""


class ResolutionError(AssistantError):
    """A free-text entity name could not be matched to exactly one record.

    Attributes:
        kind: "not_found" or "ambiguous"
        field: Payload field that held the name (e.g. "project_name")
        value: The name as written by the model
        candidates: Matching names when ambiguous
    """

    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"

    def __init__(
        self,
        message: str,
        kind: str,
        field: str,
        value: str,
        candidates: list[str] | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.field = field
        self.value = value
        self.candidates = candidates or []
