"""Error taxonomy for the chat pipeline.

Only ChatValidationError is meant to reach callers of the orchestrator;
the UpstreamUnavailableError family is absorbed into fallback text.
"""


class ChatValidationError(Exception):
    """Malformed or missing orchestrator input (HTTP 400, never retried)."""


class UpstreamUnavailableError(Exception):
    """A remote dependency (CRM, embeddings, LLM provider) failed."""

    provider: str = "unknown"


class ProviderCallError(UpstreamUnavailableError):
    """An LLM provider call failed.

    status is the HTTP status when the provider answered, None for
    connection failures and timeouts.
    """

    def __init__(self, provider: str, status: int | None, detail: str = ""):
        self.provider = provider
        self.status = status
        self.detail = detail
        status_text = status if status is not None else "no response"
        message = f"{provider} call failed ({status_text})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CRMError(UpstreamUnavailableError):
    """A CiviCRM call failed or returned is_error."""

    provider = "civicrm"


class EmbeddingError(UpstreamUnavailableError):
    """The embedding service failed or returned an unexpected vector."""

    provider = "openai-embeddings"
