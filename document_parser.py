"""
Document Parser for the Equation Editor.

A document is plain text split into sections by separator lines (three or
more hyphens). The first section may be frontmatter: ``key: value`` lines
declaring a global color and named color presets. Every other non-empty
section is one LaTeX equation.

Example document::

    color: $brand
    define.brand: #1F77B4FF
    ---
    E = mc^2 \\label{eq:energy}
    ---
    \\color{brand} a^2 + b^2 = c^2
    % color: #D62728

Usage:
    from document_parser import parse_document
    parsed = parse_document(text)
    # Re-parse after an edit, keeping equation ids stable
    parsed = parse_document(new_text, parsed.equations)
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from color_resolver import (
    DEFAULT_COLOR_MODE,
    extract_color_directive,
    resolve_color,
    rewrite_color_commands,
)

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================
SEPARATOR = "---"
AUTO_LABEL_PREFIX = "eq"
# Written ahead of a first equation that reads as frontmatter; loads as
# an ignored key.
PLACEHOLDER_HEADER = "format: equations"
# ============================================================================

_SEPARATOR_RE = re.compile(r"^\s*-{3,}\s*$")
_KEY_VALUE_RE = re.compile(r"^(\w+(?:\.\w+)*):\s*(\S.*)$")
_LABEL_RE = re.compile(r"\\label\{([\w:.-]+)\}")


@dataclass
class Frontmatter:
    """Document-wide settings from the leading configuration section."""
    color: Optional[str] = None
    color_presets: Dict[str, str] = field(default_factory=dict)

    def is_empty(self):
        return self.color is None and not self.color_presets

    def to_dict(self):
        data = {}
        if self.color is not None:
            data["color"] = self.color
        if self.color_presets:
            data["colorPresets"] = dict(self.color_presets)
        return data


@dataclass
class Equation:
    """One equation section of a document."""
    id: str
    label: str
    latex: str
    start_line: int
    end_line: int
    color: Optional[str] = None
    rendered_svg: Optional[str] = None

    def to_dict(self):
        data = {
            "id": self.id,
            "label": self.label,
            "latex": self.latex,
            "startLine": self.start_line,
            "endLine": self.end_line,
        }
        if self.color is not None:
            data["color"] = self.color
        if self.rendered_svg is not None:
            data["renderedSVG"] = self.rendered_svg
        return data


@dataclass
class ParsedDocument:
    frontmatter: Frontmatter = field(default_factory=Frontmatter)
    equations: List[Equation] = field(default_factory=list)

    def to_dict(self):
        return {
            "frontmatter": self.frontmatter.to_dict(),
            "equations": [eq.to_dict() for eq in self.equations],
        }


def generate_id():
    return str(uuid.uuid4())


def extract_label(latex):
    """Return the identifier of an explicit ``\\label{...}``, or None."""
    match = _LABEL_RE.search(latex)
    return match.group(1) if match else None


def is_frontmatter(content):
    """Check whether a section looks like frontmatter.

    True when at least one uncommented line is a ``key: value`` pair and no
    uncommented line contains a LaTeX command. Comment lines (starting with
    ``%``) are ignored.
    """
    has_key_value = False
    for line in content.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("%"):
            continue
        if "\\" in trimmed:
            return False
        if _KEY_VALUE_RE.match(trimmed):
            has_key_value = True
    return has_key_value


def parse_frontmatter(content):
    """Parse a frontmatter section into a :class:`Frontmatter`.

    ``color: <value>`` sets the global color, ``define.<name>: <value>``
    declares a preset. The global color is resolved once every preset is
    known, so it may reference a preset declared after it.
    """
    frontmatter = Frontmatter()
    raw_color = None

    for line in content.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith("%"):
            continue
        match = _KEY_VALUE_RE.match(trimmed)
        if not match:
            continue
        key, value = match.group(1), match.group(2).strip()
        if key == "color":
            raw_color = value
        elif key.startswith("define."):
            frontmatter.color_presets[key[len("define."):]] = value
        else:
            logger.debug("Ignoring unknown frontmatter key %r", key)

    frontmatter.color = resolve_color(raw_color, frontmatter.color_presets)
    return frontmatter


def _find_previous(previous_equations, explicit_label, latex):
    # First match wins: two previous equations with identical bodies compete
    # for the same section and the earlier one takes the id.
    for eq in previous_equations or []:
        if explicit_label is not None:
            if eq.label == explicit_label:
                return eq
        elif eq.latex == latex:
            return eq
    return None


def _split_sections(lines):
    """Yield ``(content, start_line, end_line)`` for each non-empty section."""
    current = []
    start_line = 0
    for i, line in enumerate(lines):
        if _SEPARATOR_RE.match(line):
            content = "\n".join(current).strip()
            if content:
                yield content, start_line, i - 1
            current = []
            start_line = i + 1
        else:
            current.append(line)

    content = "\n".join(current).strip()
    if content:
        yield content, start_line, len(lines) - 1


def parse_document(text, previous_equations=None, color_mode=DEFAULT_COLOR_MODE):
    """Parse document text into frontmatter and equations.

    Parameters
    ----------
    text : str
        Raw document text.
    previous_equations : list of Equation, optional
        Result of an earlier parse. Equations recognized as the same one
        (same explicit label, or identical rewritten latex when unlabeled)
        keep their ``id``.
    color_mode : str
        ``"css"`` or ``"strict"``; controls how in-body color commands are
        rewritten. See :mod:`color_resolver`.

    Returns
    -------
    ParsedDocument
    """
    frontmatter = Frontmatter()
    equations = []
    auto_index = 0
    is_first_section = True

    for content, start_line, end_line in _split_sections(text.split("\n")):
        if is_first_section:
            is_first_section = False
            if is_frontmatter(content):
                frontmatter = parse_frontmatter(content)
                continue

        explicit_label = extract_label(content)
        if explicit_label is None:
            auto_index += 1
            label = f"{AUTO_LABEL_PREFIX}{auto_index}"
        else:
            label = explicit_label

        latex = rewrite_color_commands(content, frontmatter.color_presets,
                                       mode=color_mode)
        color = resolve_color(extract_color_directive(content),
                              frontmatter.color_presets)

        previous = _find_previous(previous_equations, explicit_label, latex)
        equations.append(Equation(
            id=previous.id if previous is not None else generate_id(),
            label=label,
            latex=latex,
            start_line=start_line,
            end_line=end_line,
            color=color,
        ))

    return ParsedDocument(frontmatter=frontmatter, equations=equations)


def serialize_frontmatter(frontmatter):
    """Render frontmatter back to ``key: value`` lines (empty string if none)."""
    lines = []
    if frontmatter.color is not None:
        lines.append(f"color: {frontmatter.color}")
    for name, value in frontmatter.color_presets.items():
        lines.append(f"define.{name}: {value}")
    return "\n".join(lines)


def join_sections(header, bodies):
    """Join a frontmatter header and equation bodies into document text.

    Without a header, a first body that would itself read as frontmatter
    (``P: x > 0``) is preceded by ``PLACEHOLDER_HEADER`` so that it parses
    back as an equation.
    """
    sections = []
    if header:
        sections.append(header)
    elif bodies and is_frontmatter(bodies[0]):
        sections.append(PLACEHOLDER_HEADER)
    sections.extend(bodies)
    if not sections:
        return ""
    return f"\n{SEPARATOR}\n".join(sections) + "\n"


def serialize_document(parsed):
    """Render a parsed document back to the separator-delimited text format."""
    return join_sections(serialize_frontmatter(parsed.frontmatter),
                         [eq.latex for eq in parsed.equations])


def equation_at_line(equations, line):
    """Return the equation whose source range contains ``line``, or None."""
    for eq in equations:
        if eq.start_line <= line <= eq.end_line:
            return eq
    return None
