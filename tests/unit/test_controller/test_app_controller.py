"""Unit tests for the application state controller."""
import threading
from unittest.mock import Mock

import pytest

from pcbguru.controller.app_controller import AppController, classify_error
from pcbguru.controller.state import (
    ERROR_CONFIGURATION, ERROR_MALFORMED, ERROR_SERVICE, ERROR_UNKNOWN, Phase, SessionState,
)
from pcbguru.core.entities import JumperSuggestion, PcbAnalysis, Point
from pcbguru.core.exceptions import ConfigurationError, ExportError, MalformedResponse, ServiceError
from pcbguru.services.analysis_service import ANALYSIS_FAILED_MESSAGE
from pcbguru.services.chat_service import CHAT_FAILED_MESSAGE, GuruReply


@pytest.fixture
def analysis_service(sample_analysis):
    service = Mock()
    service.analyze.return_value = sample_analysis
    return service


@pytest.fixture
def chat_service():
    service = Mock()
    service.create_session.return_value = Mock(name="session")
    service.send.return_value = GuruReply(display_text="Reflow the joint.")
    return service


@pytest.fixture
def controller(analysis_service, chat_service, sync_executor):
    return AppController(analysis_service, chat_service, executor=sync_executor)


@pytest.fixture
def ready_controller(controller, png_bytes):
    controller.upload(png_bytes, "image/png", "board.png")
    assert controller.state.phase is Phase.READY
    return controller


class TestClassifyError:
    @pytest.mark.parametrize("exc,kind,retryable", [
        (ConfigurationError(), ERROR_CONFIGURATION, False),
        (ServiceError("HTTP 503"), ERROR_SERVICE, True),
        (MalformedResponse(), ERROR_MALFORMED, False),
        (RuntimeError("boom"), ERROR_UNKNOWN, True),
    ])
    def test_mapping(self, exc, kind, retryable):
        info = classify_error(exc)
        assert info.kind == kind
        assert info.retryable is retryable

    def test_unknown_uses_generic_message(self):
        assert classify_error(KeyError("x")).message == ANALYSIS_FAILED_MESSAGE

    def test_configuration_message(self):
        assert classify_error(ConfigurationError()).message == "API_KEY environment variable not set."


class TestAnalysisLifecycle:
    """Upload, completion, failure, retry and reset."""

    def test_initial_state(self, controller):
        assert controller.state == SessionState()
        assert controller.state.phase is Phase.IDLE

    def test_upload_reaches_ready(self, controller, analysis_service, png_bytes):
        seen = []
        controller.subscribe(lambda s: seen.append(s.phase))

        generation = controller.upload(png_bytes, "image/png")

        assert seen == [Phase.LOADING, Phase.READY]
        assert controller.state.generation == generation == 1
        assert len(controller.state.analysis.components) == 2
        analysis_service.analyze.assert_called_once_with(png_bytes, "image/png")

    def test_unsubscribe(self, controller, png_bytes):
        seen = []
        unsubscribe = controller.subscribe(seen.append)
        unsubscribe()
        controller.upload(png_bytes, "image/png")
        assert seen == []

    def test_failing_listener_does_not_break_others(self, controller, png_bytes):
        seen = []
        controller.subscribe(Mock(side_effect=RuntimeError("listener bug")))
        controller.subscribe(seen.append)
        controller.upload(png_bytes, "image/png")
        assert seen[-1].phase is Phase.READY

    def test_failure_sets_error(self, controller, analysis_service, png_bytes):
        analysis_service.analyze.side_effect = ServiceError("HTTP 429", user_message="Rate limited")

        controller.upload(png_bytes, "image/png")

        state = controller.state
        assert state.phase is Phase.ERROR
        assert state.analysis is None
        assert state.error.kind == ERROR_SERVICE
        assert state.error.message == "Rate limited"
        assert state.error.retryable

    def test_unexpected_failure_is_unknown(self, controller, analysis_service, png_bytes):
        analysis_service.analyze.side_effect = ValueError("bad")
        controller.upload(png_bytes, "image/png")
        assert controller.state.error.kind == ERROR_UNKNOWN

    def test_stale_result_is_discarded(self, analysis_service, chat_service, manual_executor, png_bytes,
                                       sample_analysis_dict):
        first = PcbAnalysis.from_dict({**sample_analysis_dict, "summary": "first"})
        second = PcbAnalysis.from_dict({**sample_analysis_dict, "summary": "second"})
        analysis_service.analyze.side_effect = [first, second]
        controller = AppController(analysis_service, chat_service, executor=manual_executor)

        controller.upload(b"image-a", "image/png")
        controller.upload(b"image-b", "image/png")

        manual_executor.run_next()
        assert controller.state.phase is Phase.LOADING
        assert controller.state.generation == 2

        manual_executor.run_next()
        assert controller.state.phase is Phase.READY
        assert controller.state.analysis.summary == "second"

    def test_late_stale_result_does_not_overwrite(self, analysis_service, chat_service, manual_executor,
                                                  sample_analysis_dict):
        newer = PcbAnalysis.from_dict({**sample_analysis_dict, "summary": "newer"})
        controller = AppController(analysis_service, chat_service, executor=manual_executor)

        controller.upload(b"image-a", "image/png")
        analysis_service.analyze.return_value = newer
        controller.upload(b"image-b", "image/png")

        manual_executor.run_last()
        assert controller.state.analysis.summary == "newer"

        analysis_service.analyze.side_effect = ServiceError("late failure")
        manual_executor.run_next()
        assert controller.state.phase is Phase.READY
        assert controller.state.analysis.summary == "newer"

    def test_reset_while_loading_discards_result(self, analysis_service, chat_service, manual_executor):
        controller = AppController(analysis_service, chat_service, executor=manual_executor)
        controller.upload(b"image", "image/png")

        controller.reset()
        manual_executor.run_next()

        assert controller.state.phase is Phase.IDLE
        assert controller.state.analysis is None

    def test_retry_resubmits_last_image(self, controller, analysis_service, png_bytes, sample_analysis):
        analysis_service.analyze.side_effect = [ServiceError("HTTP 503"), sample_analysis]
        controller.upload(png_bytes, "image/png", "board.png")
        assert controller.state.phase is Phase.ERROR

        generation = controller.retry()

        assert generation == 2
        assert controller.state.phase is Phase.READY
        assert controller.state.error is None
        assert controller.state.image.name == "board.png"
        assert analysis_service.analyze.call_count == 2

    def test_retry_without_image_resets(self, controller):
        assert controller.retry() is None
        assert controller.state.phase is Phase.IDLE

    def test_reset_clears_everything(self, ready_controller):
        ready_controller.select("U1")
        ready_controller.set_board_voltage(5.0)
        ready_controller.send_message("Is U1 fine?")

        ready_controller.reset()

        state = ready_controller.state
        assert state == SessionState(generation=state.generation)
        assert state.transcript == ()
        assert state.board_voltage is None

    def test_new_upload_clears_previous_session(self, ready_controller, png_bytes):
        ready_controller.select("C5")
        ready_controller.send_message("Replace?")

        ready_controller.upload(png_bytes, "image/png")

        state = ready_controller.state
        assert state.selected_id is None
        assert state.transcript == ()
        assert state.jumper_suggestion is None


class TestChat:
    """Chat gating, replies, fallbacks and staleness."""

    def test_rejected_without_analysis(self, controller, chat_service):
        assert controller.send_message("hello") is False
        chat_service.create_session.assert_not_called()

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_rejected_blank(self, ready_controller, text):
        assert ready_controller.send_message(text) is False
        assert ready_controller.state.transcript == ()

    def test_reply_appended(self, ready_controller):
        assert ready_controller.send_message("What is wrong?") is True

        transcript = ready_controller.state.transcript
        assert [(m.role, m.text) for m in transcript] == [
            ("user", "What is wrong?"), ("model", "Reflow the joint.")]
        assert ready_controller.state.chat_busy is False

    def test_session_reused_within_analysis(self, ready_controller, chat_service):
        ready_controller.send_message("one")
        ready_controller.send_message("two")
        assert chat_service.create_session.call_count == 1

    def test_new_session_after_new_upload(self, ready_controller, chat_service, png_bytes):
        ready_controller.send_message("one")
        ready_controller.upload(png_bytes, "image/png")
        ready_controller.send_message("two")
        assert chat_service.create_session.call_count == 2

    def test_context_is_passed(self, ready_controller, chat_service):
        ready_controller.select("C5")
        ready_controller.set_board_voltage(0)

        ready_controller.send_message("Replace?")

        _, text, component, voltage = chat_service.send.call_args.args
        assert text == "Replace?"
        assert component.designator == "C5"
        assert voltage == 0.0

    def test_defect_selection_sends_no_component(self, ready_controller, chat_service):
        ready_controller.select("defect-1")
        ready_controller.send_message("What is this?")
        assert chat_service.send.call_args.args[2] is None

    def test_jumper_suggestion_stored(self, ready_controller, chat_service):
        jumper = JumperSuggestion(Point(0.1, 0.2), Point(0.3, 0.4))
        chat_service.send.return_value = GuruReply("Add a jumper.", jumper)

        ready_controller.send_message("Bypass C5?")

        assert ready_controller.state.jumper_suggestion == jumper
        assert ready_controller.state.transcript[-1].jumper_suggestion == jumper

    def test_reply_without_jumper_keeps_previous(self, ready_controller, chat_service):
        jumper = JumperSuggestion(Point(0.1, 0.2), Point(0.3, 0.4))
        chat_service.send.return_value = GuruReply("Add a jumper.", jumper)
        ready_controller.send_message("Bypass C5?")

        chat_service.send.return_value = GuruReply("Use 30 AWG wire.")
        ready_controller.send_message("Which wire?")

        assert ready_controller.state.jumper_suggestion == jumper

    def test_failure_appends_fallback(self, ready_controller, chat_service):
        chat_service.send.side_effect = ServiceError("HTTP 500")

        assert ready_controller.send_message("Hello?") is True

        last = ready_controller.state.transcript[-1]
        assert last.role == "model"
        assert last.text == CHAT_FAILED_MESSAGE
        assert ready_controller.state.chat_busy is False

    def test_session_creation_failure_appends_fallback(self, ready_controller, chat_service):
        chat_service.create_session.side_effect = ConfigurationError()

        assert ready_controller.send_message("Hello?") is True

        assert [m.text for m in ready_controller.state.transcript] == ["Hello?", CHAT_FAILED_MESSAGE]
        assert ready_controller.state.chat_busy is False
        chat_service.send.assert_not_called()

    def test_rejected_while_busy(self, analysis_service, chat_service, manual_executor, png_bytes):
        controller = AppController(analysis_service, chat_service, executor=manual_executor)
        controller.upload(png_bytes, "image/png")
        manual_executor.run_next()

        assert controller.send_message("first") is True
        assert controller.state.chat_busy is True
        assert controller.send_message("second") is False

        manual_executor.run_next()
        assert [m.text for m in controller.state.transcript] == ["first", "Reflow the joint."]

    def test_reply_after_reset_is_discarded(self, analysis_service, chat_service, manual_executor, png_bytes):
        controller = AppController(analysis_service, chat_service, executor=manual_executor)
        controller.upload(png_bytes, "image/png")
        manual_executor.run_next()
        controller.send_message("hello")

        controller.reset()
        manual_executor.run_next()

        assert controller.state.transcript == ()
        assert controller.state.chat_busy is False

    def test_timeout_appends_fallback(self, analysis_service, chat_service, manual_executor, png_bytes):
        controller = AppController(analysis_service, chat_service, executor=manual_executor, chat_timeout=0.05)
        controller.upload(png_bytes, "image/png")
        manual_executor.run_next()

        idle = threading.Event()
        controller.subscribe(lambda s: idle.set() if not s.chat_busy else None)
        controller.send_message("hello")

        assert idle.wait(timeout=5)
        assert controller.state.transcript[-1].text == CHAT_FAILED_MESSAGE

        # The late reply is dropped
        manual_executor.run_next()
        assert len(controller.state.transcript) == 2
        controller.shutdown()


class TestSelectionAndVoltage:
    def test_hover(self, ready_controller):
        ready_controller.hover("U1")
        assert ready_controller.state.hovered_id == "U1"
        ready_controller.hover(None)
        assert ready_controller.state.hovered_id is None

    def test_select_toggles(self, ready_controller):
        ready_controller.select("U1")
        assert ready_controller.selected_component().designator == "U1"

        ready_controller.select("U1")
        assert ready_controller.state.selected_id is None

    def test_select_defect(self, ready_controller):
        ready_controller.select("defect-1")
        assert ready_controller.selected_component() is None
        assert ready_controller.selected_item().id == "defect-1"

    def test_clear_selection(self, ready_controller):
        ready_controller.select("C5")
        ready_controller.clear_selection()
        assert ready_controller.state.selected_id is None

    def test_voltage_mismatch_moves_component_to_issues(self, ready_controller):
        assert [c.designator for c in ready_controller.components_with_issues()] == ["C5"]

        ready_controller.set_board_voltage(12)

        assert [c.designator for c in ready_controller.components_with_issues()] == ["U1", "C5"]
        assert ready_controller.ok_components() == []
        u1 = ready_controller.state.analysis.find_component("U1")
        assert ready_controller.has_voltage_mismatch(u1)

    def test_clear_voltage(self, ready_controller):
        ready_controller.set_board_voltage(12)
        ready_controller.set_board_voltage(None)
        assert ready_controller.state.board_voltage is None
        assert [c.designator for c in ready_controller.ok_components()] == ["U1"]

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_voltage_rejected(self, ready_controller, value):
        with pytest.raises(ValueError):
            ready_controller.set_board_voltage(value)
        assert ready_controller.state.board_voltage is None

    def test_explore(self, ready_controller):
        view = ready_controller.explore("c5", "all")
        assert [c.designator for c in view.issues] == ["C5"]
        assert view.ok == []
        assert len(view.defects) == 1

    def test_explore_without_analysis(self, controller):
        view = controller.explore("anything")
        assert view.issues == [] and view.ok == [] and len(view.defects) == 0

    def test_projections_without_analysis(self, controller):
        assert controller.components_with_issues() == []
        assert controller.ok_components() == []
        assert controller.selected_component() is None


class TestExport:
    def test_export_bom(self, ready_controller, tmp_path):
        path = ready_controller.export_bom(str(tmp_path / "bom_report.csv"))
        assert path is not None
        assert ready_controller.state.export_error is None

    def test_export_without_analysis(self, controller, tmp_path):
        assert controller.export_bom(str(tmp_path / "bom.csv")) is None
        assert controller.export_report(str(tmp_path / "report.pdf")) is None

    def test_export_report(self, ready_controller, tmp_path):
        ready_controller.send_message("Is C5 burnt?")
        path = ready_controller.export_report(str(tmp_path / "pcb_report.pdf"))
        with open(path, "rb") as f:
            assert f.read(4) == b"%PDF"

    def test_export_failure_keeps_analysis(self, ready_controller, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        analysis = ready_controller.state.analysis

        assert ready_controller.export_bom(str(blocker / "bom.csv")) is None

        state = ready_controller.state
        assert state.export_error.kind == ExportError.BOM_FAILED
        assert state.phase is Phase.READY
        assert state.analysis is analysis

        ready_controller.clear_export_error()
        assert ready_controller.state.export_error is None

    @pytest.mark.parametrize("export", ["export_bom", "export_report"])
    def test_repeated_failure_notifies_each_time(self, ready_controller, tmp_path, export):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        errors = []
        ready_controller.subscribe(lambda s: errors.append(s.export_error) if s.export_error else None)

        getattr(ready_controller, export)(str(blocker / "out"))
        getattr(ready_controller, export)(str(blocker / "out"))

        assert len(errors) == 2
        assert errors[0] == errors[1]

    def test_successful_export_clears_previous_error(self, ready_controller, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        ready_controller.export_bom(str(blocker / "bom.csv"))

        assert ready_controller.export_bom(str(tmp_path / "bom.csv")) is not None
        assert ready_controller.state.export_error is None

    def test_undecodable_image_is_screenshot_failure(self, controller, tmp_path):
        controller.upload(b"not really an image", "image/png")

        assert controller.export_report(str(tmp_path / "report.pdf")) is None
        assert controller.state.export_error.kind == ExportError.SCREENSHOT_FAILED
