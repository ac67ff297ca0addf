"""Unit tests for datasheet lookup."""
from unittest.mock import patch

import pytest

from pcbguru.services.datasheet_service import datasheet_search_url, open_datasheet


def test_search_url_is_encoded():
    assert datasheet_search_url("NE555") == "https://duckduckgo.com/?q=NE555%20datasheet%20pdf"


def test_special_characters_are_escaped():
    url = datasheet_search_url(" LM317T/NOPB+ ")
    assert url.endswith("LM317T%2FNOPB%2B%20datasheet%20pdf")


@pytest.mark.parametrize("mpn", ["", "   ", None])
def test_empty_mpn_rejected(mpn):
    with pytest.raises(ValueError):
        datasheet_search_url(mpn)


def test_open_datasheet_opens_new_tab():
    with patch("pcbguru.services.datasheet_service.webbrowser.open", return_value=True) as mock_open:
        url = open_datasheet("ATMEGA328P-AU")

    mock_open.assert_called_once_with(url, new=2)
    assert "ATMEGA328P-AU" in url


def test_open_datasheet_without_browser_still_returns_url():
    with patch("pcbguru.services.datasheet_service.webbrowser.open", return_value=False):
        assert open_datasheet("NE555").startswith("https://duckduckgo.com/")
