"""Custom exception classes for the muralla library.

This module defines specific exception types for handling errors in:
- Document validation before ingestion
- Configuration loading
- AI capability interactions (embeddings, extraction, inference)
- Graph repository operations
- Decoding of structured LLM responses
"""


class MurallaError(Exception):
    """Base class for all muralla errors.

    Attributes:
        message (str): Human-readable description of the error
    """

    def __init__(self, message: str = "Knowledge graph operation failed"):
        self.message = message
        super().__init__(self.message)


class InvalidDocumentError(MurallaError):
    """Exception raised when a document is malformed or unsupported.

    This exception is raised before any side effect takes place, for example
    when the document text is too short to be worth ingesting.
    """

    def __init__(self, message: str = "Invalid document"):
        super().__init__(message)


class InvalidConfigError(MurallaError):
    """Exception raised when configuration values cannot be used.

    Typical causes are a non-numeric embedding dimension or an unknown AI provider.
    """

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message)


class AIServiceError(MurallaError):
    """Exception raised when an AI capability call fails or returns unusable data.

    Attributes:
        message (str): Human-readable description of the AI failure
    """

    def __init__(self, message: str = "AI service call failed"):
        super().__init__(message)


class LLMServiceNoResponseError(AIServiceError):
    """Exception raised when an LLM service fails to return a response."""

    def __init__(self, message: str = "LLM service did not provide a response"):
        super().__init__(message)


class DatabaseError(MurallaError):
    """Exception raised when a graph repository operation fails.

    Driver-specific exceptions are wrapped into this type so that callers only
    need to know about one failure kind for persistence.
    """

    def __init__(self, message: str = "Graph repository operation failed"):
        super().__init__(message)


class ResponseParseError(MurallaError):
    """Exception raised when a structured response cannot be decoded."""

    def __init__(self, message: str = "Could not parse the structured response"):
        super().__init__(message)
