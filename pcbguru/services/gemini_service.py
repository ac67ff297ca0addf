"""Shared plumbing for talking to the Gemini API.

Both the analysis client and the chat client build their ``genai.Client``
through :class:`GeminiService`, which reads the API key at call time, applies
the configured HTTP timeout and turns SDK failures into the application's
error taxonomy.
"""

import logging
from typing import Callable, Optional, Tuple

from google import genai
from google.genai import errors, types

from ..config.settings import Config
from ..core.exceptions import ConfigurationError, ServiceError

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, int], genai.Client]


def create_client(api_key: str, timeout: int) -> genai.Client:
    """Create a Gemini client with an HTTP timeout.

    Args:
        api_key: Google AI API key
        timeout: Request timeout in seconds
    """
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout * 1000)),
    )


class GeminiService:
    """Base class for services that call the Gemini API."""

    def __init__(self, config: Config, client_factory: Optional[ClientFactory] = None):
        self.config = config
        self._client_factory = client_factory or create_client
        self._client: Optional[genai.Client] = None
        self._client_key: Optional[Tuple[str, int]] = None

    @property
    def model(self) -> str:
        return self.config.gemini_model

    def is_configured(self) -> bool:
        return self.config.has_api_key()

    def _get_client(self) -> genai.Client:
        """Return a client for the current credential.

        Raises:
            ConfigurationError: If no API key is available
        """
        api_key = self.config.resolve_api_key()
        if not api_key:
            raise ConfigurationError(
                "No Gemini API key configured",
                user_message="API_KEY environment variable not set.")

        key = (api_key, self.config.gemini_timeout)
        if self._client is None or self._client_key != key:
            self._client = self._client_factory(api_key, self.config.gemini_timeout)
            self._client_key = key
            logger.info(f"Gemini client created for model: {self.model}")
        return self._client

    @staticmethod
    def _service_error(exc: Exception, operation: str, user_message: str) -> ServiceError:
        """Wrap an SDK or transport failure."""
        if isinstance(exc, errors.APIError):
            detail = f"{operation} failed with status {exc.code}: {exc.message}"
        else:
            detail = f"{operation} failed: {type(exc).__name__}: {exc}"
        logger.error(detail)
        return ServiceError(detail, user_message=user_message)


def diagnose_empty_response(response, method_name: str) -> str:
    """Explain why a Gemini response carried no text.

    Args:
        response: The GenerateContentResponse object
        method_name: Name of the calling method for context

    Returns:
        Diagnostic message for the logs
    """
    if not response:
        return f"[{method_name}] Response object is None or False"

    diagnostics = []

    prompt_feedback = getattr(response, 'prompt_feedback', None)
    if prompt_feedback:
        block_reason = getattr(prompt_feedback, 'block_reason', None)
        if block_reason:
            diagnostics.append(f"PROMPT BLOCKED - Reason: {block_reason}")
        else:
            diagnostics.append(f"Prompt feedback present: {prompt_feedback}")

    candidates = getattr(response, 'candidates', None)
    if not candidates:
        diagnostics.append("No candidates in response")
        return f"[{method_name}] Empty response - " + "; ".join(diagnostics)

    candidate = candidates[0]
    diagnostics.append(f"Number of candidates: {len(candidates)}")

    finish_reason = getattr(candidate, 'finish_reason', None)
    if finish_reason is not None:
        diagnostics.append(f"Finish reason: {finish_reason}")
        finish_reason_explanations = {
            'SAFETY': 'Response blocked by safety filters',
            'MAX_TOKENS': 'Response truncated due to token limit',
            'RECITATION': 'Response blocked due to recitation concerns',
            'OTHER': 'Response stopped for other reasons',
        }
        name = getattr(finish_reason, 'name', str(finish_reason)).split('.')[-1]
        if name in finish_reason_explanations:
            diagnostics.append(f"Explanation: {finish_reason_explanations[name]}")

    content = getattr(candidate, 'content', None)
    if not content or not getattr(content, 'parts', None):
        diagnostics.append("Candidate has no content parts")

    return f"[{method_name}] Empty response - " + "; ".join(diagnostics)
