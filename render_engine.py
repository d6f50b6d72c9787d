"""
Typesetting engine boundary for the Equation Editor.

The engine turns one LaTeX equation into SVG markup. Requests and results
are small dataclasses; the dict forms below are the JSON shapes exchanged
with out-of-process engines (a web view running MathJax, an HTTP service):

    request:  {"id": ..., "latex": ..., "displayMode": "inline" | "block"}
    success:  {"id": ..., "svg": ..., "success": true}
    failure:  {"id": ..., "error": ..., "success": false}

``MathtextEngine`` is the in-process engine, built on matplotlib. It needs no
TeX installation unless ``use_latex=True``.

Usage:
    from render_engine import MathtextEngine, RenderRequest
    result = MathtextEngine().render(RenderRequest("e1", r"\\frac{a}{b}"))
    if result.success:
        print(result.svg)
"""

import io
import logging
import re
from dataclasses import dataclass

import matplotlib
from matplotlib.backends.backend_svg import FigureCanvasSVG
from matplotlib.colors import is_color_like
from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================
DISPLAY_MODES = ("inline", "block")
DEFAULT_DISPLAY_MODE = "block"
BLOCK_FONTSIZE = 18
INLINE_FONTSIZE = 16
MATH_FONTSET = "cm"
PAD_INCHES = 0.02
LATEX_PREAMBLE = r"\usepackage{amsmath}\usepackage{xcolor}"
COLOR_NEEDS_LATEX = ("Color commands inside the equation body need "
                     "use_latex=True (--use-latex).")
# ============================================================================

_SVG_OPEN_RE = re.compile(r"<svg\b[^>]*>")
_COLOR_COMMAND_RE = re.compile(r"\\(color|textcolor)(?:\[(\w+)\])?\{([^}]*)\}")
_RGB_FUNC_RE = re.compile(
    r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*[\d.]+\s*)?\)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RenderRequest:
    id: str
    latex: str
    display_mode: str = DEFAULT_DISPLAY_MODE

    def __post_init__(self):
        if self.display_mode not in DISPLAY_MODES:
            raise ValueError(
                f"displayMode must be one of {DISPLAY_MODES}, "
                f"got {self.display_mode!r}."
            )

    def to_dict(self):
        return {"id": self.id, "latex": self.latex,
                "displayMode": self.display_mode}


@dataclass(frozen=True)
class RenderSuccess:
    id: str
    svg: str
    success = True

    def to_dict(self):
        return {"id": self.id, "svg": self.svg, "success": True}


@dataclass(frozen=True)
class RenderFailure:
    id: str
    error: str
    success = False

    def to_dict(self):
        return {"id": self.id, "error": self.error, "success": False}


def result_from_dict(payload):
    """Parse an engine response dict into RenderSuccess or RenderFailure.

    Raises ValueError when the payload does not match either shape.
    """
    if not isinstance(payload, dict):
        raise ValueError("Engine response must be a dict.")
    eq_id = payload.get("id")
    if not isinstance(eq_id, str) or not eq_id:
        raise ValueError("Engine response: missing 'id'.")
    success = payload.get("success")
    if success is True:
        svg = payload.get("svg")
        if not isinstance(svg, str):
            raise ValueError(f"Engine response {eq_id!r}: missing 'svg'.")
        return RenderSuccess(eq_id, svg)
    if success is False:
        error = payload.get("error")
        if not isinstance(error, str):
            raise ValueError(f"Engine response {eq_id!r}: missing 'error'.")
        return RenderFailure(eq_id, error)
    raise ValueError(
        f"Engine response {eq_id!r}: 'success' must be true or false."
    )


class TypesetEngine:
    """Base class for typesetting engines.

    Subclasses implement :meth:`render`. Engines that need a warm-up phase
    override :meth:`start` and call ``on_ready`` once they can accept
    requests.
    """

    def start(self, on_ready):
        on_ready()

    def render(self, request):
        raise NotImplementedError


def _closing_brace(text):
    """Index of the brace closing the group opened at ``text[0]``, or -1."""
    depth = 0
    for i, ch in enumerate(text):
        if i > 0 and text[i - 1] == "\\":
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _matplotlib_color(model, value):
    value = value.strip()
    if model == "HTML":
        color = f"#{value}"
    elif model == "RGB":
        color = tuple(int(part) / 255 for part in value.split(","))
    elif model is None:
        rgb = _RGB_FUNC_RE.match(value)
        color = tuple(int(c) / 255 for c in rgb.groups()) if rgb else value
    else:
        color = None
    if color is None or not is_color_like(color):
        raise ValueError(f"Unknown color {value!r}.")
    return color


def split_color_command(latex):
    """Turn a whole-equation color command into a text color for mathtext.

    mathtext has no color commands. A leading ``\\color{c}``, or a
    ``\\textcolor{c}{...}`` spanning the entire equation, is removed and its
    color returned separately.

    Returns
    -------
    tuple of (str, color or None)
        The remaining LaTeX and a matplotlib color (None without a command).

    Raises
    ------
    ValueError
        For color commands anywhere else, or an unknown color.
    """
    latex = latex.strip()
    commands = list(_COLOR_COMMAND_RE.finditer(latex))
    if not commands:
        return latex, None
    first = commands[0]
    if len(commands) > 1 or first.start() != 0:
        raise ValueError(COLOR_NEEDS_LATEX)

    command, model, value = first.groups()
    color = _matplotlib_color(model, value)
    rest = latex[first.end():].strip()
    if command == "color":
        return rest, color
    if rest.startswith("{") and _closing_brace(rest) == len(rest) - 1:
        return rest[1:-1].strip(), color
    raise ValueError(COLOR_NEEDS_LATEX)


class MathtextEngine(TypesetEngine):
    """Render equations to SVG with matplotlib.

    Parameters
    ----------
    block_fontsize : float
        Font size for ``"block"`` requests.
    inline_fontsize : float
        Font size for ``"inline"`` requests.
    use_latex : bool
        Use system LaTeX (``text.usetex``) instead of mathtext. Without it
        only a whole-equation color command is supported, see
        :func:`split_color_command`.
    preamble : str
        Extra LaTeX preamble, appended to ``LATEX_PREAMBLE`` when
        ``use_latex`` is set.
    """

    def __init__(self, block_fontsize=BLOCK_FONTSIZE,
                 inline_fontsize=INLINE_FONTSIZE, use_latex=False,
                 preamble=""):
        self.block_fontsize = block_fontsize
        self.inline_fontsize = inline_fontsize
        self.use_latex = use_latex
        self.preamble = preamble

    def _rc_params(self):
        if self.use_latex:
            return {
                "text.usetex": True,
                "text.latex.preamble": LATEX_PREAMBLE + self.preamble,
            }
        return {"text.usetex": False, "mathtext.fontset": MATH_FONTSET}

    def render(self, request):
        if not request.latex.strip():
            return RenderFailure(request.id, "Empty equation")

        fontsize = (self.block_fontsize if request.display_mode == "block"
                    else self.inline_fontsize)
        try:
            latex, color = request.latex, None
            if not self.use_latex:
                latex, color = split_color_command(latex)
                if not latex:
                    return RenderFailure(request.id, "Empty equation")
            with matplotlib.rc_context(self._rc_params()):
                # No pyplot: renders may run off the main thread.
                fig = Figure(figsize=(0.01, 0.01))
                FigureCanvasSVG(fig)
                fig.text(0, 0, f"${latex}$", fontsize=fontsize, color=color)
                buf = io.BytesIO()
                fig.savefig(buf, format="svg", bbox_inches="tight",
                            pad_inches=PAD_INCHES, transparent=True,
                            metadata={"Date": None})
        except (ValueError, RuntimeError) as exc:
            logger.debug("Render failed for %s: %s", request.id, exc)
            return RenderFailure(request.id, str(exc).strip() or type(exc).__name__)

        return RenderSuccess(request.id, _inherit_current_color(
            buf.getvalue().decode("utf-8")))


def _inherit_current_color(svg):
    """Wrap the drawing in a ``fill="currentColor"`` group.

    matplotlib leaves black glyphs without a fill, so without the wrapper
    color post-processing would have nothing to replace.
    """
    match = _SVG_OPEN_RE.search(svg)
    close = svg.rfind("</svg>")
    if match is None or close < match.end():
        return svg
    return (svg[:match.end()] + '\n<g fill="currentColor">'
            + svg[match.end():close] + "</g>\n" + svg[close:])
