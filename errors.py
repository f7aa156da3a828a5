class AssistantError(Exception):
    """Base class for failures that abort a calendar request."""


class ConfigurationError(AssistantError):
    """Raised when an external service is used without its credential."""


class TranscriptionError(AssistantError):
    """Raised when no recognition attempt produced a usable transcript."""


class IntentParseError(AssistantError):
    """Raised when the language model reply is not a valid intent."""


class StorageError(AssistantError):
    """Raised when the event collection cannot be read or written."""


class SynthesisError(AssistantError):
    """Raised when no audio could be produced for a reply."""
