from typing import Optional


class TetoAgentError(Exception):
    """Base class for errors raised by the conversation engine"""


class GenerationError(TetoAgentError):
    """The generation model failed to produce a response"""

    def __init__(self, binding: str, cause: Optional[BaseException] = None):
        self.binding = binding
        self.cause = cause
        super().__init__(f"Generation failed on {binding} binding: {cause}")


class SummaryShapeError(TetoAgentError):
    """The summarization model returned something other than non-empty text"""


class ToolLoopLimitError(TetoAgentError):
    """The model kept requesting tools past the configured number of rounds"""


class SystemPromptUnavailableError(TetoAgentError):
    """No persona prompt could be obtained for the turn"""


class TurnTimeoutError(TetoAgentError):
    """A turn did not finish within the configured time budget"""


class BackendApiError(TetoAgentError):
    """The backend API answered with an error or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ToolLookupError(TetoAgentError):
    """Raised inside a tool when its lookup fails.

    Carries the text the model should see instead of a result. The dispatcher
    converts it into a degraded tool result; it never escapes a turn.
    """

    def __init__(self, fallback_text: str):
        self.fallback_text = fallback_text
        super().__init__(fallback_text)
