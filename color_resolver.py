"""
Color Resolver for the Equation Editor.

Normalizes color literals, resolves ``$name`` preset references declared in
document frontmatter, rewrites color commands inside equation bodies, and
applies the resolved color to rendered SVG markup.

Two normalization strategies are available:

- ``"css"`` (default): permissive. Strips alpha from ``#RRGGBBAA`` and
  ``rgba(...)``, passes everything else through. Output is valid both as an
  SVG attribute value and for renderers that accept CSS colors in
  ``\\color{...}``.
- ``"strict"``: rewrites in-body colors into the markup's own color-model
  syntax (``\\color[HTML]{FF0000}``, ``\\color[RGB]{255,0,0}``), for engines
  backed by real LaTeX + xcolor.

Usage:
    from color_resolver import resolve_color, rewrite_color_commands
    resolve_color("$brand", {"brand": "#FF0000AA"})       # '#FF0000'
    rewrite_color_commands(r"\\color{brand} x", {"brand": "#00FF00"})
"""

import re
from xml.sax.saxutils import escape

from matplotlib.colors import CSS4_COLORS

# ============================================================================
# CONFIGURATION
# ============================================================================
COLOR_MODES = ("css", "strict")
DEFAULT_COLOR_MODE = "css"

# Standard LaTeX/xcolor color names, left untouched everywhere
STANDARD_COLORS = frozenset({
    "black", "white", "red", "green", "blue", "cyan", "magenta", "yellow",
    "darkgray", "gray", "lightgray", "brown", "lime", "olive", "orange",
    "pink", "purple", "teal", "violet",
})
# ============================================================================

_HEX8_RE = re.compile(r"^#([0-9A-Fa-f]{6})[0-9A-Fa-f]{2}$")
_HEX_RE = re.compile(r"^#([0-9A-Fa-f]{3}|[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
_RGBA_RE = re.compile(
    r"^rgba\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*[\d.]+\s*\)$",
    re.IGNORECASE,
)
_RGB_RE = re.compile(
    r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*[\d.]+\s*)?\)$",
    re.IGNORECASE,
)
_COLOR_COMMAND_RE = re.compile(r"\\(color|textcolor)\{([^}]+)\}")
_DIRECTIVE_RE = re.compile(r"^%\s*color:\s*(\S.*)$")
_SVG_BLACK_RE = re.compile(r'(?<![\w-])(fill|stroke)="(?:black|currentColor)"')


def is_standard_color(name):
    """True for the closed set of standard color names (case-insensitive)."""
    return name.strip().lower() in STANDARD_COLORS


def _validate_mode(mode):
    if mode not in COLOR_MODES:
        raise ValueError(
            f"color mode must be one of {COLOR_MODES}, got {mode!r}."
        )


def normalize_color(color):
    """Normalize a color literal for SVG and CSS-aware renderers.

    ``#RRGGBBAA`` becomes ``#RRGGBB`` and ``rgba(r, g, b, a)`` becomes
    ``rgb(r, g, b)``. Every other literal is returned trimmed but otherwise
    unchanged.
    """
    trimmed = color.strip()

    hex8 = _HEX8_RE.match(trimmed)
    if hex8:
        return f"#{hex8.group(1)}"

    rgba = _RGBA_RE.match(trimmed)
    if rgba:
        r, g, b = rgba.groups()
        return f"rgb({r}, {g}, {b})"

    return trimmed


def to_latex_color(color):
    """Convert a color literal to the argument of a LaTeX color command.

    The strict counterpart of :func:`normalize_color`. Hex literals become a
    fixed ``[HTML]{RRGGBB}`` triplet and ``rgb()``/``rgba()`` become the
    native ``[RGB]{r,g,b}`` model. Standard color names and unknown words are
    kept as a plain ``{name}`` argument.

    Parameters
    ----------
    color : str
        Color literal, e.g. ``"#ff000080"``, ``"rgba(0, 128, 0, 0.5)"``.

    Returns
    -------
    str
        Argument text to place right after ``\\color``, e.g.
        ``"[HTML]{FF0000}"`` or ``"{red}"``.
    """
    trimmed = color.strip()
    if is_standard_color(trimmed):
        return f"{{{trimmed}}}"

    hex_match = _HEX_RE.match(trimmed)
    if hex_match:
        digits = hex_match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return f"[HTML]{{{digits[:6].upper()}}}"

    rgb = _RGB_RE.match(trimmed)
    if rgb:
        return "[RGB]{{{},{},{}}}".format(*rgb.groups())

    css_hex = CSS4_COLORS.get(trimmed.lower())
    if css_hex:
        return f"[HTML]{{{css_hex[1:].upper()}}}"

    return f"{{{trimmed}}}"


def resolve_color(color, presets=None):
    """Resolve a color value through the preset mapping and normalize it.

    Parameters
    ----------
    color : str or None
        Color literal or ``$presetName`` reference.
    presets : dict, optional
        Mapping of preset name to color literal.

    Returns
    -------
    str or None
        Normalized color. Unknown ``$name`` references come back as the
        literal itself (``$`` included) rather than raising.
    """
    if not color:
        return None

    if color.startswith("$"):
        resolved = (presets or {}).get(color[1:]) or color
        return normalize_color(resolved)

    return normalize_color(color)


def rewrite_color_commands(latex, presets=None, mode=DEFAULT_COLOR_MODE):
    """Rewrite ``\\color{...}`` and ``\\textcolor{...}`` arguments in place.

    Standard color names are left as is, preset names are replaced by their
    value, ``#...`` and ``rgb(...)`` literals are normalized. Unknown bare
    words are assumed to be colors defined elsewhere and are left untouched.
    """
    _validate_mode(mode)
    presets = presets or {}

    def _replace(match):
        command, name = match.groups()
        trimmed = name.strip()

        if is_standard_color(trimmed):
            return match.group(0)

        value = presets.get(trimmed)
        if not value:
            if not (trimmed.startswith("#") or trimmed.lower().startswith("rgb")):
                return match.group(0)
            value = trimmed

        if mode == "strict":
            return f"\\{command}{to_latex_color(value)}"
        return f"\\{command}{{{normalize_color(value)}}}"

    return _COLOR_COMMAND_RE.sub(_replace, latex)


def extract_color_directive(latex):
    """Return the value of a trailing ``% color: <value>`` comment.

    Only the last non-blank line counts; the same text anywhere earlier is an
    ordinary comment.
    """
    for line in reversed(latex.split("\n")):
        trimmed = line.strip()
        if not trimmed:
            continue
        match = _DIRECTIVE_RE.match(trimmed)
        return match.group(1).strip() if match else None
    return None


def apply_color(svg, color):
    """Replace black and ``currentColor`` fill/stroke values in SVG markup.

    A ``None`` color returns the markup unchanged (black).
    """
    if not color:
        return svg
    value = escape(color, {'"': "&quot;"})
    return _SVG_BLACK_RE.sub(lambda m: f'{m.group(1)}="{value}"', svg)
