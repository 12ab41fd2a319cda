"""Generates opaque identifiers for preview sessions and generated projects."""

import logging
import re
import time
import uuid
from typing import Optional

logger = logging.getLogger(__name__)

PREVIEW_PREFIX = "prev"
PROJECT_PREFIX = "proj"

# <prefix>_<unix millis>_<12 hex chars>
ID_PATTERN = re.compile(r'^(prev|proj)_\d{13,}_[a-f0-9]{12}$')


def is_valid_id(value: str, prefix: Optional[str] = None) -> bool:
    """
    Validate identifier format before it is used to build a storage key.

    Args:
        value: String to validate
        prefix: Expected prefix (``prev`` or ``proj``), any when omitted

    Returns:
        True if the value has the generated id shape
    """
    if not value or not isinstance(value, str):
        return False
    if not ID_PATTERN.match(value):
        return False
    return prefix is None or value.startswith(f"{prefix}_")


def is_valid_preview_id(value: str) -> bool:
    """True if value looks like an id returned by generate_preview_id()."""
    return is_valid_id(value, PREVIEW_PREFIX)


def _generate(prefix: str) -> str:
    """
    Combine a millisecond timestamp with 48 random bits.

    The timestamp keeps ids from different moments apart; the random part
    separates ids issued within the same millisecond.
    """
    millis = int(time.time() * 1000)
    return f"{prefix}_{millis}_{uuid.uuid4().hex[:12]}"


def generate_preview_id() -> str:
    """Generate a fresh preview session id (``prev_<millis>_<hex>``)."""
    preview_id = _generate(PREVIEW_PREFIX)
    logger.debug(f"Generated preview id: {preview_id}")
    return preview_id


def generate_project_id() -> str:
    """Generate a fresh project id (``proj_<millis>_<hex>``)."""
    return _generate(PROJECT_PREFIX)
