"""Pytest configuration and shared fixtures for PCB Fault Guru.

Provides sample analysis payloads, a fake Gemini client, deterministic
executors for the controller and small test images.
"""
import concurrent.futures
import io
import json
import logging
import sys
from collections import deque
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import Mock

import pytest
from PIL import Image

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pcbguru.config.settings import Config
from pcbguru.core.entities import PcbAnalysis


# Disable some verbose loggers during testing
logging.getLogger('PIL').setLevel(logging.WARNING)

TEST_API_KEY = "test_api_key_for_testing_only"


@pytest.fixture(autouse=True)
def clean_api_key_env(monkeypatch):
    """No test sees a credential from the developer's shell."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)


@pytest.fixture
def sample_analysis_dict() -> Dict[str, Any]:
    """Two components and one defect, as the model returns them."""
    return {
        "components": [
            {
                "designator": "U1",
                "mpn": "ATMEGA328P-AU",
                "bbox": {"x": 0.40, "y": 0.40, "w": 0.20, "h": 0.20},
                "presence": "ok",
                "condition": "ok",
                "confidence": 0.95,
                "temperature": 45.5,
                "maxVoltage": 5.5,
                "datasheetUrl": "https://example.com/atmega328p.pdf",
            },
            {
                "designator": "C5",
                "mpn": "GRM188R71C104KA01",
                "bbox": {"x": 0.10, "y": 0.70, "w": 0.05, "h": 0.05},
                "presence": "ok",
                "condition": "burnt",
                "confidence": 0.81,
            },
        ],
        "defects": [
            {
                "id": "defect-1",
                "type": "solder_bridge",
                "bbox": {"x": 0.45, "y": 0.58, "w": 0.04, "h": 0.02},
                "confidence": 0.77,
                "description": "Bridge between pins 12 and 13",
            },
        ],
        "summary": "Board has one burnt capacitor and a solder bridge on U1.",
        "advice": {
            "quick_actions": ["Remove the solder bridge on U1", "Replace C5"],
            "alternatives": [
                {
                    "original_mpn": "GRM188R71C104KA01",
                    "replacements": [{"mpn": "CL10B104KB8NNNC", "reason": "Same value and package"}],
                }
            ],
            "next_steps": ["Power up with a current-limited supply"],
            "repair_cost": 12.5,
        },
    }


@pytest.fixture
def sample_analysis(sample_analysis_dict) -> PcbAnalysis:
    return PcbAnalysis.from_dict(sample_analysis_dict)


@pytest.fixture
def config() -> Config:
    """Configuration with a test credential."""
    return Config(gemini_api_key=TEST_API_KEY)


@pytest.fixture
def unconfigured_config() -> Config:
    return Config(gemini_api_key="")


def make_response(text: str) -> SimpleNamespace:
    """Stand-in for a GenerateContentResponse."""
    return SimpleNamespace(text=text, candidates=[], prompt_feedback=None)


@pytest.fixture
def mock_chat():
    chat = Mock()
    chat.send_message.return_value = make_response("Check the solder joints around U1.")
    return chat


@pytest.fixture
def mock_genai_client(sample_analysis_dict, mock_chat):
    """Fake ``genai.Client`` with canned analysis and chat replies."""
    client = Mock()
    client.models.generate_content.return_value = make_response(json.dumps(sample_analysis_dict))
    client.chats.create.return_value = mock_chat
    return client


@pytest.fixture
def client_factory(mock_genai_client):
    factory = Mock(return_value=mock_genai_client)
    return factory


class SynchronousExecutor(concurrent.futures.Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, *args, **kwargs):
        future = concurrent.futures.Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class ManualExecutor(concurrent.futures.Executor):
    """Queues submitted work until the test runs it, to control ordering."""

    def __init__(self):
        self.pending = deque()

    def submit(self, fn, *args, **kwargs):
        future = concurrent.futures.Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_next(self):
        future, fn, args, kwargs = self.pending.popleft()
        self._run(future, fn, args, kwargs)

    def run_last(self):
        future, fn, args, kwargs = self.pending.pop()
        self._run(future, fn, args, kwargs)

    @staticmethod
    def _run(future, fn, args, kwargs):
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)


@pytest.fixture
def sync_executor():
    return SynchronousExecutor()


@pytest.fixture
def manual_executor():
    return ManualExecutor()


@pytest.fixture
def sample_pil_image() -> Image.Image:
    image = Image.new("RGB", (400, 300), (20, 90, 40))
    return image


@pytest.fixture
def png_bytes(sample_pil_image) -> bytes:
    buffer = io.BytesIO()
    sample_pil_image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes(sample_pil_image) -> bytes:
    buffer = io.BytesIO()
    sample_pil_image.save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def make_reply():
    """Factory for fake model responses."""
    return make_response


# Test markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "security: mark test as security test")
