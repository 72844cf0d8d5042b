"""Exception taxonomy for chatcortex."""


class ChatCortexError(Exception):
    """Base class for all chatcortex errors."""


class ImageFetchError(ChatCortexError):
    """Raised when an image referenced by a message cannot be retrieved."""

    def __init__(self, url: str, reason: str | None = None) -> None:
        """Initialize the error with the image source URL."""
        self.url = url
        self.reason = reason
        message = f"Failed to fetch image: {url}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ProviderError(ChatCortexError):
    """Raised when a vendor call fails or returns a malformed payload."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        """Initialize the error with the vendor name and underlying message."""
        self.provider = provider
        self.message = message
        self.status_code = status_code
        prefix = f"{provider} request failed"
        if status_code is not None:
            prefix = f"{prefix} (HTTP {status_code})"
        super().__init__(f"{prefix}: {message}")


class UnexpectedResponseFormatError(ProviderError):
    """Raised when a vendor response carries no usable text block."""

    def __init__(self, provider: str, detail: str | None = None) -> None:
        """Initialize the error for ``provider``."""
        message = "response contained no text content"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(provider, message)


class SearchProviderError(ChatCortexError):
    """Raised when the web search backend fails or times out."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        """Initialize the error with the search provider name."""
        self.provider = provider
        self.message = message
        self.status_code = status_code
        prefix = f"{provider} search failed"
        if status_code is not None:
            prefix = f"{prefix} (HTTP {status_code})"
        super().__init__(f"{prefix}: {message}")


class SearchRefinementError(ChatCortexError):
    """Raised when the LLM cannot refine a query into a search query."""


class UnsupportedModelError(ChatCortexError):
    """Raised when a message targets a model id that is not registered."""

    def __init__(self, model_id: str) -> None:
        """Initialize the error with the unknown model id."""
        self.model_id = model_id
        super().__init__(f"Unsupported model: {model_id}")


class DuplicateModelError(ChatCortexError):
    """Raised when two registry entries share the same model id."""

    def __init__(self, model_id: str) -> None:
        """Initialize the error with the duplicated model id."""
        self.model_id = model_id
        super().__init__(f"Duplicate model id in registry: {model_id}")


class ChatDispatchError(ChatCortexError):
    """Raised when generating the assistant reply fails.

    ``user_message`` is the single aggregated text the caller renders as a
    system-role message in place of the pending placeholder.
    """

    def __init__(self, user_message: str, *, model_id: str | None = None) -> None:
        """Initialize the error with the user-facing message."""
        self.user_message = user_message
        self.model_id = model_id
        super().__init__(user_message)


class ChatNotFoundError(ChatCortexError, LookupError):
    """Raised when a chat or session id is unknown to the store."""

    def __init__(self, kind: str, key: str) -> None:
        """Initialize the error with the missing record kind and id."""
        self.kind = kind
        self.key = key
        super().__init__(f"Unknown {kind}: {key}")
