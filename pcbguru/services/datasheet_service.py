"""Datasheet lookup by manufacturer part number."""

import logging
import webbrowser
from urllib.parse import quote

logger = logging.getLogger(__name__)

SEARCH_URL = "https://duckduckgo.com/?q="


def datasheet_search_url(mpn: str) -> str:
    """Web search URL for a part's datasheet.

    Raises:
        ValueError: If ``mpn`` is empty
    """
    if not mpn or not mpn.strip():
        raise ValueError("MPN is required for a datasheet lookup")
    return SEARCH_URL + quote(f"{mpn.strip()} datasheet pdf", safe="")


def open_datasheet(mpn: str) -> str:
    """Open the datasheet search in the default browser and return its URL."""
    url = datasheet_search_url(mpn)
    if not webbrowser.open(url, new=2):
        logger.warning(f"No browser available to open {url}")
    else:
        logger.info(f"Opened datasheet search for {mpn}")
    return url
