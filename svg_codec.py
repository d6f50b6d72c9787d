"""
SVG Round-Trip Codec for the Equation Editor.

Exported SVG artifacts embed the equation they were rendered from, twice:

1. a ``<metadata id="latex-equations" data-type="application/json">`` element
   holding a JSON payload with provenance and an ``equations`` array;
2. a ``<g data-role="latex-equation" ...>`` wrapper around the drawing whose
   ``data-*`` attributes repeat the id, LaTeX source and display mode.

Either channel is enough to re-import the artifact. PNG exports are a lossy
side path and are never accepted as import sources.

Usage:
    from svg_codec import encode_svg, import_svg
    artifact = encode_svg(raw_svg, equation)
    document_text = import_svg(artifact)
"""

import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from xml.sax.saxutils import escape

from document_parser import join_sections
from render_engine import DEFAULT_DISPLAY_MODE, DISPLAY_MODES

# ============================================================================
# CONFIGURATION
# ============================================================================
GENERATOR_NAME = "equation-editor"
GENERATOR_VERSION = "0.1.0"
SCALE_FACTOR = 2
FALLBACK_WIDTH = "100"
FALLBACK_HEIGHT = "50"
FALLBACK_VIEWBOX = "0 0 100 50"
METADATA_ID = "latex-equations"
EQUATION_ROLE = "latex-equation"
EX_TO_PT = 8.0              # 1ex = 8pt when rasterizing
RASTER_SCALE = 3.0          # oversampling before device pixel ratio
# ============================================================================

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_SVG_OPEN_RE = re.compile(r"<svg\b[^>]*>", re.IGNORECASE)
_SVG_CLOSE = "</svg>"
_DIMENSION_RE = re.compile(r"^\s*(\d*\.?\d+)\s*(ex|pt|px|em)?\s*$")
_ATTR_VALUE_RE = re.compile(r'="([^"]*)"')
_EX_LENGTH_RE = re.compile(r"(?<![\w.])(\d*\.?\d+)ex\b")
_METADATA_RE = re.compile(
    r"<metadata\b[^>]*\bid=\"" + METADATA_ID + r"\"[^>]*>.*?</metadata>\s*",
    re.DOTALL,
)
_ATTR_ESCAPES = {'"': "&quot;", "\n": "&#10;", "\r": "&#13;", "\t": "&#9;"}


@dataclass
class EquationRecord:
    """One equation as embedded in an artifact."""
    id: str
    latex: str
    label: Optional[str] = None
    display_mode: str = DEFAULT_DISPLAY_MODE

    def to_dict(self):
        return {"id": self.id, "latex": self.latex, "label": self.label,
                "displayMode": self.display_mode}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError("Equation entry must be an object.")
        latex = data.get("latex")
        if not isinstance(latex, str):
            raise ValueError("Equation entry: missing 'latex'.")
        display_mode = data.get("displayMode") or DEFAULT_DISPLAY_MODE
        if display_mode not in DISPLAY_MODES:
            raise ValueError(
                f"Equation entry: invalid displayMode {display_mode!r}."
            )
        return cls(
            id=str(data.get("id") or ""),
            latex=latex,
            label=data.get("label"),
            display_mode=display_mode,
        )


@dataclass
class SvgArtifact:
    """Decoded contents of an exported SVG."""
    equations: List[EquationRecord] = field(default_factory=list)
    generator: Optional[str] = None
    generator_version: Optional[str] = None
    generated_at: Optional[str] = None


def _timestamp():
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _attribute(tag, name):
    match = re.search(r'(?<![\w:-])' + name + r'\s*=\s*"([^"]*)"', tag)
    return match.group(1) if match else None


def scale_dimension(value, factor=SCALE_FACTOR):
    """Scale a length like ``"10ex"`` to ``"20.000ex"``.

    Returns None when the value is missing or not a plain length.
    """
    if value is None:
        return None
    match = _DIMENSION_RE.match(value)
    if not match:
        return None
    number, unit = match.groups()
    return f"{float(number) * factor:.3f}{unit or ''}"


def _split_fragment(svg_fragment):
    """Return ``(opening_tag, inner_markup)`` of an SVG fragment."""
    match = _SVG_OPEN_RE.search(svg_fragment)
    if match is None:
        return "", svg_fragment.strip()
    close = svg_fragment.rfind(_SVG_CLOSE)
    if close < match.end():
        close = len(svg_fragment)
    return match.group(0), svg_fragment[match.end():close].strip()


def encode_svg(svg_fragment, equation, display_mode=DEFAULT_DISPLAY_MODE,
               generated_at=None):
    """Build a standalone SVG artifact embedding the equation source.

    Parameters
    ----------
    svg_fragment : str
        Rendered SVG, already color post-processed.
    equation : Equation or EquationRecord
        Anything with ``id``, ``latex`` and ``label`` attributes.
    display_mode : str
        ``"inline"`` or ``"block"``.
    generated_at : str, optional
        ISO timestamp; defaults to now (UTC).

    Returns
    -------
    str
        SVG document. Width and height are the fragment's scaled by
        ``SCALE_FACTOR``; the viewBox is copied unchanged. Missing or
        unparsable attributes fall back to fixed defaults instead of raising.
    """
    opening, inner = _split_fragment(svg_fragment)

    width = scale_dimension(_attribute(opening, "width")) or FALLBACK_WIDTH
    height = scale_dimension(_attribute(opening, "height")) or FALLBACK_HEIGHT
    viewbox = _attribute(opening, "viewBox")
    if not viewbox or not viewbox.strip():
        viewbox = FALLBACK_VIEWBOX

    payload = {
        "generator": GENERATOR_NAME,
        "generatorVersion": GENERATOR_VERSION,
        "generatedAt": generated_at or _timestamp(),
        "equations": [
            EquationRecord(equation.id, equation.latex, equation.label,
                           display_mode).to_dict(),
        ],
    }

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<svg xmlns="{SVG_NS}" xmlns:xlink="{XLINK_NS}" '
        f'width="{escape(width, _ATTR_ESCAPES)}" '
        f'height="{escape(height, _ATTR_ESCAPES)}" '
        f'viewBox="{escape(viewbox, _ATTR_ESCAPES)}">\n'
        f'  <metadata id="{METADATA_ID}" data-type="application/json">'
        f"{escape(json.dumps(payload, ensure_ascii=False))}</metadata>\n"
        f'  <g data-role="{EQUATION_ROLE}" '
        f'data-equation-id="{escape(equation.id, _ATTR_ESCAPES)}" '
        f'data-latex="{escape(equation.latex, _ATTR_ESCAPES)}" '
        f'data-display-mode="{escape(display_mode, _ATTR_ESCAPES)}">\n'
        f"{inner}\n"
        "  </g>\n"
        "</svg>\n"
    )


def _local_name(tag):
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _parse_root(svg_text):
    if isinstance(svg_text, bytes):
        data = svg_text
    else:
        data = svg_text.encode("utf-8")
    if data.lstrip().startswith(PNG_SIGNATURE):
        raise ValueError("PNG artifacts do not carry equation metadata.")
    try:
        return ET.fromstring(data)
    except ET.ParseError as exc:
        raise ValueError(f"Not a valid SVG document: {exc}") from exc


def _decode_metadata(element):
    try:
        payload = json.loads(element.text or "")
    except json.JSONDecodeError as exc:
        raise ValueError(f"Malformed equation metadata: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Equation metadata must be a JSON object.")
    entries = payload.get("equations")
    if not isinstance(entries, list):
        raise ValueError("Equation metadata: 'equations' must be an array.")
    return SvgArtifact(
        equations=[EquationRecord.from_dict(entry) for entry in entries],
        generator=payload.get("generator"),
        generator_version=payload.get("generatorVersion"),
        generated_at=payload.get("generatedAt"),
    )


def decode_svg(svg_text):
    """Recover the equations embedded in an exported SVG.

    The ``<metadata>`` JSON is authoritative; the ``<g data-role>`` wrappers
    are used only when it is missing.

    Raises
    ------
    ValueError
        If the input is not XML, is a PNG, or carries no equations.
    """
    root = _parse_root(svg_text)

    groups = []
    for element in root.iter():
        name = _local_name(element.tag)
        if name == "metadata" and element.get("id") == METADATA_ID:
            return _decode_metadata(element)
        if name == "g" and element.get("data-role") == EQUATION_ROLE:
            groups.append(element)

    if not groups:
        raise ValueError("No embedded LaTeX equations found in SVG.")

    records = []
    for g in groups:
        records.append(EquationRecord.from_dict({
            "id": g.get("data-equation-id"),
            "latex": g.get("data-latex"),
            "displayMode": g.get("data-display-mode"),
        }))
    return SvgArtifact(equations=records)


def records_to_document(records):
    """Re-emit equation records as document text without settings."""
    return join_sections(None, [record.latex.strip() for record in records])


def import_svg(svg_text):
    """Decode an artifact straight to document text."""
    return records_to_document(decode_svg(svg_text).equations)


# ============================================================================
# Raster export (lossy)
# ============================================================================

def convert_ex_to_pt(svg):
    """Rewrite every ``ex`` length inside attribute values to points.

    Covers whole values (``width="2ex"``) as well as lengths embedded in
    longer values (``style="vertical-align: -0.5ex"``). 1ex = 8pt.
    """
    def _to_pt(match):
        return f"{float(match.group(1)) * EX_TO_PT:.3f}pt"

    return _ATTR_VALUE_RE.sub(
        lambda m: '="' + _EX_LENGTH_RE.sub(_to_pt, m.group(1)) + '"', svg)


def strip_metadata(svg):
    """Drop the embedded equation metadata element."""
    return _METADATA_RE.sub("", svg)


def svg_to_png(svg, device_pixel_ratio=1.0):
    """Rasterize an SVG artifact to PNG bytes.

    The result carries no equation metadata and cannot be re-imported.
    Requires cairosvg (and the cairo system library).
    """
    import cairosvg

    prepared = convert_ex_to_pt(strip_metadata(svg))
    return cairosvg.svg2png(
        bytestring=prepared.encode("utf-8"),
        scale=RASTER_SCALE * device_pixel_ratio,
    )
