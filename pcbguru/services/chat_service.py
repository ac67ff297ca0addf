"""Conversational follow-up client ("Guru").

One chat session is scoped to one analysis. Each outbound user message is
decorated with the selected component and board voltage; each reply is
scanned for an embedded jumper suggestion.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from google.genai import types

from ..core.entities import Component, JumperSuggestion
from ..core.exceptions import ApplicationError, ServiceError
from ..core.status import component_status
from .gemini_service import GeminiService, diagnose_empty_response

logger = logging.getLogger(__name__)

CHAT_FAILED_MESSAGE = "Sorry, I encountered an error. Please try again."

JUMPER_JSON_PATTERN = re.compile(r"```json\s*(\{[\s\S]*?\})\s*```")

GURU_SYSTEM_INSTRUCTION = """
You are a helpful AI assistant for electronics repair. Your name is 'Guru'.
You are having a conversation with an engineer about a specific Printed Circuit Board (PCB) they are analyzing.
- Keep your answers concise and to the point.
- If the user provides context about a selected component, focus your answer on that component.
- The user might provide the board's operating voltage. Use this to assess risks.
- If asked for a workaround that involves bypassing a component, you can suggest adding a jumper wire.
- To suggest a jumper, you MUST output a JSON block with the 'jumper' key. The coordinates for the jumper must be normalized (0.0 to 1.0) and should be near component pins or pads, not in the middle of a component.
- Example Jumper JSON:
```json
{
  "jumper": {
    "from": { "x": 0.25, "y": 0.35 },
    "to": { "x": 0.28, "y": 0.55 }
  }
}
```
- Do not add the JSON block unless you are specifically suggesting a jumper wire.
"""


@dataclass
class ChatSession:
    """Opaque handle around the SDK chat for one analysis."""
    chat: Any = field(repr=False)
    model: str
    messages_sent: int = 0


@dataclass(frozen=True)
class GuruReply:
    display_text: str
    jumper_suggestion: Optional[JumperSuggestion] = None


def build_contextual_message(message: str, component: Optional[Component] = None,
                             board_voltage: Optional[float] = None) -> str:
    """Decorate the user's text with selection and voltage context.

    Only the outbound message is decorated; the transcript keeps the
    original text.
    """
    contextual_message = message
    if component is not None:
        contextual_message = (
            f"Context: I have selected component {component.designator} ({component.mpn}). "
            f"Its condition is '{component_status(component)}'.\n\nMy question: {message}"
        )
    if board_voltage is not None:
        contextual_message += f"\n(Note: The board voltage is set to {board_voltage:g}V)."
    return contextual_message


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_jumper(payload: Any) -> Optional[JumperSuggestion]:
    if not isinstance(payload, dict):
        return None
    jumper = payload.get("jumper")
    if not isinstance(jumper, dict):
        return None
    for end in ("from", "to"):
        point = jumper.get(end)
        if not isinstance(point, dict) or not _is_number(point.get("x")) or not _is_number(point.get("y")):
            return None
    return JumperSuggestion.from_dict(jumper)


def extract_jumper_suggestion(reply_text: str) -> Tuple[str, Optional[JumperSuggestion]]:
    """Pull an embedded jumper suggestion out of a reply.

    Returns:
        ``(display_text, suggestion)``. When the first fenced JSON block holds
        a well-formed jumper, the block is removed from the text. Otherwise
        the reply is returned unchanged with no suggestion.
    """
    match = JUMPER_JSON_PATTERN.search(reply_text or "")
    if not match:
        return reply_text, None

    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse jumper suggestion from model response: {e}")
        return reply_text, None

    suggestion = _parse_jumper(payload)
    if suggestion is None:
        logger.debug("Fenced JSON block in reply is not a jumper suggestion")
        return reply_text, None

    display_text = (reply_text[:match.start()] + reply_text[match.end():]).strip()
    return display_text, suggestion


class GuruChatService(GeminiService):
    """Conversational follow-up client."""

    def build_chat_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=GURU_SYSTEM_INSTRUCTION,
            temperature=self.config.chat_temperature,
        )

    def create_session(self) -> ChatSession:
        """Start a dialogue for the current analysis.

        Raises:
            ConfigurationError: If no API key is available
        """
        client = self._get_client()
        chat = client.chats.create(model=self.model, config=self.build_chat_config())
        logger.info(f"Guru chat session created on {self.model}")
        return ChatSession(chat=chat, model=self.model)

    def send(self, session: ChatSession, user_text: str,
             selected_component: Optional[Component] = None,
             board_voltage: Optional[float] = None) -> GuruReply:
        """Send one message and post-process the reply.

        Raises:
            ServiceError: On transport failure or an empty reply
        """
        outbound = build_contextual_message(user_text, selected_component, board_voltage)
        logger.debug(f"Sending chat message ({len(outbound)} chars, "
                     f"component={'yes' if selected_component else 'no'}, voltage={board_voltage})")
        try:
            response = session.chat.send_message(outbound)
            text = response.text if response is not None else None
        except ApplicationError:
            raise
        except Exception as e:
            raise self._service_error(e, "Guru chat request", CHAT_FAILED_MESSAGE) from e

        session.messages_sent += 1

        if not text:
            logger.warning(diagnose_empty_response(response, "send"))
            raise ServiceError("Empty chat reply from model", user_message=CHAT_FAILED_MESSAGE)

        display_text, suggestion = extract_jumper_suggestion(text)
        if suggestion is not None:
            logger.info("Reply carried a jumper suggestion")
        return GuruReply(display_text=display_text, jumper_suggestion=suggestion)
