"""
Exceptions raised by the reminder service.
"""


class MediMinderError(RuntimeError):
    """Base exception for the reminder service."""
    pass


class StorageWriteError(MediMinderError):
    """A collection could not be written to the key-value store."""
    pass


class UnrecognizedResponseShape(MediMinderError):
    """A collaborator payload matched none of the expected shapes."""
    pass


class DocumentAnalysisError(MediMinderError):
    """The document/OCR collaborator failed."""
    pass


class ChatProviderError(MediMinderError):
    """A chat provider call failed."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class ChatQuotaError(ChatProviderError):
    """Quota or billing limit reached on a chat provider."""
    pass


class ChatCooldownError(MediMinderError):
    """Question sent before the cooldown elapsed."""
    pass


class ChatEmptyReplyError(ChatProviderError):
    """The provider answered with nothing usable."""
    pass
