class GenerationError(Exception):
    """Base class for every failure raised by the generation layer."""


class JsonRetryable(GenerationError):
    """Provider answered, but the text did not parse as JSON."""


class RateLimited(GenerationError):
    def __init__(self, message: str = "Provider rate limit hit", retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ModelUnavailable(GenerationError):
    """The model identifier is unknown, retired or unsupported."""


class NetworkTransient(GenerationError):
    def __init__(self, message: str, category: str) -> None:
        super().__init__(message)
        self.category = category


class QuotaExhausted(GenerationError):
    def __init__(self, message: str = "Content generation quota exhausted. Please try again later.") -> None:
        super().__init__(message)


class ProviderError(GenerationError):
    pass


class InvalidModule(GenerationError):
    def __init__(self, module_name: str) -> None:
        super().__init__(f"Invalid module name: {module_name}")
        self.module_name = module_name


class MissingContext(GenerationError):
    def __init__(self, module_name: str, required: str = "refined_concept") -> None:
        super().__init__(
            f"Cannot regenerate {module_name} without context: {required} has not been generated yet"
        )
        self.module_name = module_name
        self.required = required


class SessionNotFound(GenerationError):
    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class ChatUnavailable(GenerationError):
    pass
