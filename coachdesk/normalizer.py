"""
normalizer.py – Response body cleaning
────────────────────────────────────────────
The institute backend sometimes returns JSON whose quotes and
brackets are HTML-entity encoded, prefixes a byte-order mark,
or answers with an HTML error page. Nothing here raises: a body
that still won't parse becomes a diagnostic payload.
────────────────────────────────────────────
"""

import json
import logging
from typing import Any, Tuple

log = logging.getLogger(__name__)

BOM = "\ufeff"
DIAGNOSTIC_PREFIX_LEN = 100

_ENTITIES = (
    ("&quot;", '"'),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)


def clean_json_text(text: str | None) -> str:
    """Strip a leading BOM, decode the four known entities, trim whitespace."""
    if not text:
        return ""
    if text.startswith(BOM):
        text = text[1:]
    for entity, literal in _ENTITIES:
        text = text.replace(entity, literal)
    return text.strip()


def parse_body(text: str | None, ok: bool = True) -> Tuple[Any, bool]:
    """
    Returns (value, parsed).

    On a parse failure with a success status the value is a synthetic
    {"message": ...} payload; with a failure status the caller should
    raise a status-code based error instead of trusting the value.
    """
    clean = clean_json_text(text)
    try:
        return json.loads(clean), True
    except ValueError as e:
        log.warning(f"[NORMALIZER] Non-JSON body (ok={ok}): {e} → {clean[:DIAGNOSTIC_PREFIX_LEN]!r}")
        return {"message": f"Server returned invalid JSON: {clean[:DIAGNOSTIC_PREFIX_LEN]}..."}, False
