"""Security tests for API key handling.

The key is only ever read from the environment; it must not show up in
logs, configuration dumps or object reprs.
"""
import json
import logging

import pytest

from pcbguru.config.settings import Config, load_config
from pcbguru.core.logging_config import (
    CorrelationContext, CorrelationIDFilter, HumanReadableFormatter, SecuritySafeFormatter, StructuredFormatter,
)
from pcbguru.services.analysis_service import PcbAnalysisService

GOOGLE_STYLE_KEY = "AIza" + "Sy" + "A1b2C3d4E5f6G7h8I9j0K1l2M3n4O5p6Q"


def _record(message: str) -> logging.LogRecord:
    record = logging.LogRecord("pcbguru.test", logging.INFO, __file__, 1, message, None, None)
    CorrelationIDFilter().filter(record)
    return record


@pytest.mark.security
class TestAPIKeySanitization:
    """Test that API keys are redacted from log output."""

    @pytest.mark.parametrize("message,secret", [
        (f"Using key {GOOGLE_STYLE_KEY}", GOOGLE_STYLE_KEY),
        ("api_key=hunter2secret", "hunter2secret"),
        ("GEMINI_API_KEY: abcdef123456", "abcdef123456"),
        ("GET https://example.com/v1/models?key=abcdef123456", "abcdef123456"),
        ("token: tok_987654", "tok_987654"),
    ])
    def test_redact(self, message, secret):
        redacted = SecuritySafeFormatter.redact(message)
        assert secret not in redacted
        assert "[REDACTED]" in redacted

    def test_plain_text_untouched(self):
        message = "Analysis ready for generation 3"
        assert SecuritySafeFormatter.redact(message) == message

    def test_human_readable_formatter(self):
        output = HumanReadableFormatter().format(_record(f"Configuring client with {GOOGLE_STYLE_KEY}"))
        assert GOOGLE_STYLE_KEY not in output
        assert " - [-] - " in output

    def test_structured_formatter(self):
        with CorrelationContext("gen-7"):
            record = _record("api_key=hunter2secret")
        output = StructuredFormatter().format(record)

        entry = json.loads(output)
        assert entry["correlation_id"] == "gen-7"
        assert "hunter2secret" not in output


@pytest.mark.security
class TestAPIKeyExposure:
    """The key never leaks through configuration objects."""

    def test_config_repr_hides_key(self):
        config = Config(gemini_api_key="super-secret-value")
        assert "super-secret-value" not in repr(config)

    def test_to_dict_omits_key(self):
        d = Config(gemini_api_key="super-secret-value").to_dict()
        assert "gemini_api_key" not in d
        assert "super-secret-value" not in json.dumps(d)

    def test_key_from_file_is_never_loaded(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"gemini_api_key": "from-file"}))

        config = load_config(str(config_path), str(tmp_path / ".env"))

        assert config.resolve_api_key() is None

    def test_service_logs_do_not_contain_key(self, config, client_factory, png_bytes, caplog):
        service = PcbAnalysisService(config, client_factory=client_factory)

        with caplog.at_level(logging.DEBUG):
            service.analyze(png_bytes, "image/png")

        assert config.gemini_api_key not in caplog.text
