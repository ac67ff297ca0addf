"""Application state controller.

Owns the single :class:`SessionState` and sequences the analysis and chat
clients. Network calls run on a worker executor; their completions are handed
to ``dispatch`` (the Tk ``after`` hook in the app) so every state change
happens on one thread.

Each outstanding request is tagged with the session generation it was made
for. Upload, retry and reset bump the generation, and any completion carrying
an older generation is dropped.
"""

import concurrent.futures
import logging
import math
import os
import threading
from dataclasses import replace
from functools import partial
from typing import Callable, List, Optional

from ..core.entities import ChatMessage, Component, ImageInput
from ..core.exceptions import (
    ApplicationError, ConfigurationError, ExportError, MalformedResponse, ServiceError,
)
from ..core.logging_config import CorrelationContext
from ..core import status
from ..services.analysis_service import ANALYSIS_FAILED_MESSAGE, PcbAnalysisService
from ..services.chat_service import CHAT_FAILED_MESSAGE, ChatSession, GuruChatService, GuruReply
from ..services import export_service
from ..utils.image_utils import open_image
from .state import (
    ERROR_CONFIGURATION, ERROR_MALFORMED, ERROR_SERVICE, ERROR_UNKNOWN,
    ErrorInfo, Phase, SessionState,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]
Dispatcher = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


def classify_error(exc: BaseException) -> ErrorInfo:
    """Map an analysis failure to the error shown to the user."""
    if isinstance(exc, ConfigurationError):
        return ErrorInfo(ERROR_CONFIGURATION, exc.user_message, retryable=False)
    if isinstance(exc, ServiceError):
        return ErrorInfo(ERROR_SERVICE, exc.user_message, retryable=True)
    if isinstance(exc, MalformedResponse):
        return ErrorInfo(ERROR_MALFORMED, exc.user_message, retryable=False)
    return ErrorInfo(ERROR_UNKNOWN, ANALYSIS_FAILED_MESSAGE, retryable=True)


class AppController:
    """Single source of truth for one board-inspection session."""

    def __init__(self, analysis_service: PcbAnalysisService, chat_service: GuruChatService,
                 executor: Optional[concurrent.futures.Executor] = None,
                 dispatch: Optional[Dispatcher] = None,
                 chat_timeout: Optional[float] = None):
        self._analysis_service = analysis_service
        self._chat_service = chat_service
        self._owns_executor = executor is None
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="pcbguru-worker")
        self._dispatch = dispatch or _call_now
        self._chat_timeout = chat_timeout

        self._lock = threading.RLock()
        self._state = SessionState()
        self._listeners: List[StateListener] = []
        self._chat_session: Optional[ChatSession] = None
        self._chat_request = 0
        self._chat_timer: Optional[threading.Timer] = None

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set_state(self, new_state: SessionState) -> None:
        with self._lock:
            if new_state == self._state:
                return
            self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.error(f"State listener {listener!r} failed: {e}", exc_info=True)

    def _update(self, **changes) -> None:
        self._set_state(replace(self._state, **changes))

    # -- analysis ----------------------------------------------------------

    def upload(self, image: bytes, mime_type: str, name: Optional[str] = None) -> int:
        """Start analysing a new image, discarding everything about the old one.

        Returns:
            The generation the request was tagged with
        """
        image_input = ImageInput(data=image, mime_type=mime_type, name=name)
        with self._lock:
            generation = self._begin_generation()
            self._set_state(SessionState(phase=Phase.LOADING, image=image_input, generation=generation))

        logger.info(f"Analysis requested for {name or 'image'} ({mime_type}), generation {generation}")
        future = self._executor.submit(self._analysis_job, generation, image_input)
        future.add_done_callback(
            lambda f: self._dispatch(partial(self._on_analysis_done, generation, f)))
        return generation

    def _analysis_job(self, generation: int, image: ImageInput):
        with CorrelationContext(f"gen-{generation}"):
            return self._analysis_service.analyze(image.data, image.mime_type)

    def _on_analysis_done(self, generation: int, future: concurrent.futures.Future) -> None:
        with self._lock:
            if generation != self._state.generation:
                logger.info(f"Discarding stale analysis result for generation {generation} "
                            f"(current {self._state.generation})")
                return

            exc = future.exception()
            if exc is None:
                analysis = future.result()
                logger.info(f"Analysis ready for generation {generation}")
                self._update(phase=Phase.READY, analysis=analysis, error=None)
                return

            if isinstance(exc, ApplicationError):
                logger.warning(f"Analysis failed for generation {generation}: {exc}")
            else:
                logger.error(f"Unexpected analysis failure for generation {generation}: "
                             f"{type(exc).__name__}: {exc}", exc_info=exc)
            self._update(phase=Phase.ERROR, analysis=None, error=classify_error(exc))

    def retry(self) -> Optional[int]:
        """Leave the error state; re-submit the last image when there is one."""
        image = self._state.image
        if image is not None:
            return self.upload(image.data, image.mime_type, image.name)
        self.reset()
        return None

    def reset(self) -> None:
        """Back to IDLE with every piece of session data cleared at once."""
        with self._lock:
            generation = self._begin_generation()
            self._set_state(SessionState(generation=generation))
        logger.info(f"Session reset, generation {generation}")

    def _begin_generation(self) -> int:
        self._cancel_chat_timer()
        self._chat_session = None
        self._chat_request += 1
        return self._state.generation + 1

    # -- chat --------------------------------------------------------------

    def send_message(self, text: str) -> bool:
        """Send a chat message about the current analysis.

        Returns:
            False when the message was rejected (no analysis, chat busy or
            blank text)
        """
        with self._lock:
            state = self._state
            if state.analysis is None or state.chat_busy or not (text or "").strip():
                logger.debug("Chat message rejected")
                return False

            transcript = state.transcript + (ChatMessage(role="user", text=text),)
            selected = self.selected_component()

            if self._chat_session is None:
                try:
                    self._chat_session = self._chat_service.create_session()
                except ApplicationError as e:
                    logger.warning(f"Could not start chat session: {e}")
                    self._update(transcript=transcript + (self._fallback_message(),))
                    return True

            self._chat_request += 1
            request = self._chat_request
            generation = state.generation
            session = self._chat_session
            self._update(transcript=transcript, chat_busy=True)
            self._start_chat_timer(generation, request)

        future = self._executor.submit(
            self._chat_job, generation, session, text, selected, state.board_voltage)
        future.add_done_callback(
            lambda f: self._dispatch(partial(self._on_chat_done, generation, request, f)))
        return True

    def _chat_job(self, generation: int, session: ChatSession, text: str,
                  component: Optional[Component], board_voltage: Optional[float]) -> GuruReply:
        with CorrelationContext(f"gen-{generation}"):
            return self._chat_service.send(session, text, component, board_voltage)

    def _is_current_chat(self, generation: int, request: int) -> bool:
        return generation == self._state.generation and request == self._chat_request and self._state.chat_busy

    def _on_chat_done(self, generation: int, request: int, future: concurrent.futures.Future) -> None:
        with self._lock:
            if not self._is_current_chat(generation, request):
                logger.info(f"Discarding stale chat reply for generation {generation}")
                return
            self._cancel_chat_timer()

            exc = future.exception()
            if exc is not None:
                logger.warning(f"Chat request failed: {type(exc).__name__}: {exc}")
                self._update(transcript=self._state.transcript + (self._fallback_message(),), chat_busy=False)
                return

            reply: GuruReply = future.result()
            message = ChatMessage(role="model", text=reply.display_text,
                                  jumper_suggestion=reply.jumper_suggestion)
            changes = {"transcript": self._state.transcript + (message,), "chat_busy": False}
            if reply.jumper_suggestion is not None:
                changes["jumper_suggestion"] = reply.jumper_suggestion
            self._update(**changes)

    def _on_chat_timeout(self, generation: int, request: int) -> None:
        with self._lock:
            if not self._is_current_chat(generation, request):
                return
            logger.warning(f"Chat request timed out after {self._chat_timeout}s")
            self._chat_request += 1
            self._chat_timer = None
            self._update(transcript=self._state.transcript + (self._fallback_message(),), chat_busy=False)

    def _start_chat_timer(self, generation: int, request: int) -> None:
        self._cancel_chat_timer()
        if not self._chat_timeout:
            return
        timer = threading.Timer(
            self._chat_timeout,
            lambda: self._dispatch(partial(self._on_chat_timeout, generation, request)))
        timer.daemon = True
        self._chat_timer = timer
        timer.start()

    def _cancel_chat_timer(self) -> None:
        if self._chat_timer is not None:
            self._chat_timer.cancel()
            self._chat_timer = None

    @staticmethod
    def _fallback_message() -> ChatMessage:
        return ChatMessage(role="model", text=CHAT_FAILED_MESSAGE)

    # -- selection and voltage ---------------------------------------------

    def hover(self, item_id: Optional[str]) -> None:
        self._update(hovered_id=item_id)

    def select(self, item_id: Optional[str]) -> None:
        """Select an item; selecting the selected item clears the selection."""
        if item_id is not None and item_id == self._state.selected_id:
            item_id = None
        self._update(selected_id=item_id)

    def clear_selection(self) -> None:
        self._update(selected_id=None)

    def set_board_voltage(self, voltage: Optional[float]) -> None:
        """Set or clear the board voltage.

        Raises:
            ValueError: If the voltage is not a finite number
        """
        if voltage is not None:
            voltage = float(voltage)
            if not math.isfinite(voltage):
                raise ValueError(f"Board voltage must be finite, got {voltage}")
        self._update(board_voltage=voltage)

    # -- derived projections -----------------------------------------------

    def components_with_issues(self) -> List[Component]:
        state = self._state
        if state.analysis is None:
            return []
        return status.partition_components(state.analysis.components, state.board_voltage)[0]

    def ok_components(self) -> List[Component]:
        state = self._state
        if state.analysis is None:
            return []
        return status.partition_components(state.analysis.components, state.board_voltage)[1]

    def selected_component(self) -> Optional[Component]:
        state = self._state
        if state.analysis is None:
            return None
        return state.analysis.find_component(state.selected_id)

    def selected_item(self):
        state = self._state
        if state.analysis is None:
            return None
        return state.analysis.find_item(state.selected_id)

    def has_voltage_mismatch(self, component: Component) -> bool:
        return status.has_voltage_mismatch(component, self._state.board_voltage)

    def explore(self, search: str = "", component_filter: str = status.FILTER_ALL) -> status.ExplorerView:
        state = self._state
        if state.analysis is None:
            return status.ExplorerView(issues=[], ok=[], defects=())
        return status.explore(state.analysis, state.board_voltage, search, component_filter)

    # -- export ------------------------------------------------------------

    def export_bom(self, path: str) -> Optional[str]:
        """Write the BOM; failures are recorded in ``export_error``."""
        analysis = self._state.analysis
        if analysis is None:
            return None
        # Reset first so a repeat of the same failure still notifies.
        self._update(export_error=None)
        try:
            result = export_service.write_bom_csv(analysis, path)
        except ExportError as e:
            self._update(export_error=ErrorInfo(e.kind, e.user_message))
            return None
        return result

    def export_report(self, path: str) -> Optional[str]:
        """Write the PDF report; failures are recorded in ``export_error``."""
        state = self._state
        if state.analysis is None:
            return None
        self._update(export_error=None)
        try:
            image = None
            if state.image is not None:
                try:
                    image = open_image(state.image.data)
                except OSError as e:
                    raise ExportError(f"Cannot decode board image: {e}",
                                      kind=ExportError.SCREENSHOT_FAILED) from e
            result = export_service.write_pdf_report(
                state.analysis, state.transcript, state.board_voltage, path,
                image=image, jumper=state.jumper_suggestion)
        except ExportError as e:
            logger.error(f"Report export failed ({e.kind}): {e}")
            self._update(export_error=ErrorInfo(e.kind, e.user_message))
            return None
        logger.info(f"Report written to {os.path.abspath(result)}")
        return result

    def clear_export_error(self) -> None:
        self._update(export_error=None)

    def shutdown(self) -> None:
        self._cancel_chat_timer()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
