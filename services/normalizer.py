# services/normalizer.py
import re
import logging
from typing import List, Optional

from models.question import OptionItem, clean
from models.search import SearchRequest

logger = logging.getLogger(__name__)

OPTION_KEY = re.compile(r"^([A-Z])(Image)?$")


def _option_from_value(value) -> Optional[OptionItem]:
    if isinstance(value, OptionItem):
        return OptionItem(text=clean(value.text), images=clean(value.images))
    if isinstance(value, dict):
        return OptionItem(text=clean(value.get("text")), images=clean(value.get("images")))
    if isinstance(value, str):
        return OptionItem(text=clean(value))
    return None


def normalize_options(options) -> Optional[List[OptionItem]]:
    """Convert array or keyed-object options into an ordered option list.

    A keyed object uses single uppercase letters (A, B, C, ...) with an optional
    ``<letter>Image`` companion; letters are ordered lexicographically. An empty
    object means no options were supplied and becomes None.
    """
    if options is None:
        return None

    if isinstance(options, (list, tuple)):
        items = [_option_from_value(value) for value in options]
        return [item for item in items if item is not None]

    if isinstance(options, dict):
        if not options:
            return None
        # A letter with only an image key is still an option
        letters = sorted({match.group(1) for match in map(OPTION_KEY.match, options) if match})
        return [
            OptionItem(text=clean(options.get(letter)), images=clean(options.get(f"{letter}Image")))
            for letter in letters
        ]

    logger.warning(f"Ignoring options of unsupported type: {type(options).__name__}")
    return None


def normalize_request(raw: dict) -> SearchRequest:
    """Build the canonical search request from heterogeneous caller input."""
    raw = raw or {}
    return SearchRequest(
        directions=clean(raw.get("directions")) or clean(raw.get("description")),
        questionText=clean(raw.get("questionText")) or clean(raw.get("question")),
        questionImage=clean(raw.get("questionImage")),
        passage=clean(raw.get("passage")),
        statements=clean(raw.get("statements")),
        conclusions=clean(raw.get("conclusions")),
        options=normalize_options(raw.get("options")),
    )
