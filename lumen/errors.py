"""Exception types shared across the turn pipeline."""


class LumenError(Exception):
    """Base class for errors raised by Lumen components."""


class ProviderError(LumenError):
    """An embedding or model provider call failed."""


class RetrievalError(LumenError):
    """A search or page fetch against the retrieval backend failed."""
