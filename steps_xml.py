"""
steps_xml.py – Conversion between TestStep lists and the XML blob ADO stores
in ``Microsoft.VSTS.TCM.Steps``.

    <steps id="0" last="2">
      <step id="1" type="ActionStep">
        <parameterizedString isformatted="true">action</parameterizedString>
        <parameterizedString isformatted="true">expected</parameterizedString>
        <description/>
      </step>
      ...
    </steps>

Parsing never raises: a draft test case may legitimately have no steps.
"""

from __future__ import annotations

import html
import logging
import re
from xml.sax.saxutils import escape

from models import TestStep

logger = logging.getLogger("qe-ado-sync")

_ENTITIES = {'"': "&quot;", "'": "&apos;"}

_STEP_RE = re.compile(
    r"<step\b[^>]*?\bid=\"(\d+)\"[^>]*>\s*"
    r"<parameterizedString\b[^>]*?(?:/>|>(.*?)</parameterizedString>)\s*"
    r"(?:<parameterizedString\b[^>]*?(?:/>|>(.*?)</parameterizedString>))?",
    re.DOTALL,
)

_EMPTY_STEPS_RE = re.compile(r"\s*<steps\b[^>]*?(?:/>|>\s*</steps>)\s*")

# Raw markup inside a parameterizedString (real tags, never escaped text).
_RAW_TAG_RE = re.compile(r"<[^>]+>")

# Rich-text markup the ADO editor stores entity-escaped (``&lt;P&gt;``).
# Only its formatting tags are removed, so "<Enter>" typed in a step survives.
_HTML_TAG_RE = re.compile(
    r"</?(?:p|div|br|b|i|u|span|strong|em|font|ul|ol|li)\b[^<>]*/?>",
    re.IGNORECASE,
)


def _escape(text: str) -> str:
    return escape(text or "", _ENTITIES)


def _clean(raw: str | None) -> str:
    if not raw:
        return ""
    text = _RAW_TAG_RE.sub("", raw)
    text = html.unescape(text)
    return _HTML_TAG_RE.sub("", text).strip()


def serialize_steps(steps: list[TestStep]) -> str:
    """Build the Steps XML; ids are renumbered 1..N in ``step_number`` order."""
    ordered = sorted(steps, key=lambda s: s.step_number)
    parts = [f'<steps id="0" last="{len(ordered)}">']
    for idx, step in enumerate(ordered, start=1):
        parts.append(
            f'<step id="{idx}" type="ActionStep">'
            f'<parameterizedString isformatted="true">{_escape(step.action)}</parameterizedString>'
            f'<parameterizedString isformatted="true">{_escape(step.expected_result)}</parameterizedString>'
            "<description/>"
            "</step>"
        )
    parts.append("</steps>")
    return "".join(parts)


def parse_steps(xml_str: str | None) -> list[TestStep]:
    """Parse the Steps XML back into TestStep objects (empty list on no match)."""
    if not xml_str or not xml_str.strip():
        return []

    steps: list[TestStep] = []
    for number, match in enumerate(_STEP_RE.finditer(xml_str), start=1):
        steps.append(
            TestStep(
                action=_clean(match.group(2)),
                expected_result=_clean(match.group(3)),
                step_number=number,
            )
        )

    if not steps and not _EMPTY_STEPS_RE.fullmatch(xml_str):
        logger.warning("Could not parse TCM Steps XML; treating as empty.")
    return steps
