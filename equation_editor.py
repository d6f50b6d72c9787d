#!/usr/bin/env python3
"""
Equation Editor — LaTeX equation documents with round-trip SVG export.

Parses a document of ``---``-separated LaTeX equations (with optional color
frontmatter), renders each equation, and writes SVG artifacts that embed
their own source so they can be imported back into a document later.

Usage:
    # As a module
    from equation_editor import export_document
    export_document(text, "output")

    # From CLI
    python equation_editor.py --input equations.tex --output output/
    python equation_editor.py --input equations.tex --format png --dpr 2
    python equation_editor.py --input equations.tex --list
    python equation_editor.py --import-svg output/eq1.svg output/eq2.svg
"""

import argparse
import json
import logging
import re
from pathlib import Path

from document_parser import parse_document
from project_file import load_project, new_project, save_project
from render_coordinator import render_document
from render_engine import MathtextEngine
from svg_codec import decode_svg, encode_svg, records_to_document, svg_to_png

# ============================================================================
# CONFIGURATION - Edit these for Spyder / interactive use
# ============================================================================
INPUT_FILE = None           # Document text (.tex/.txt) or project (.json)
OUTPUT_DIR = "output"
EXPORT_FORMAT = "svg"       # "svg" or "png"
DISPLAY_MODE = "block"      # "block" or "inline"
COLOR_MODE = None           # "css" or "strict"; None picks from USE_LATEX
USE_LATEX = False           # Set True if you have LaTeX installed
EQUATION_FONTSIZE = 18
DEVICE_PIXEL_RATIO = 1.0
# ============================================================================


def _file_stem(label):
    stem = re.sub(r"[^\w-]+", "_", label).strip("_")
    return stem or "equation"


def save_artifact(svg, name, outdir, fmt="svg", device_pixel_ratio=1.0):
    """Save an SVG artifact, or its PNG rasterization.

    Parameters
    ----------
    svg : str
        Encoded SVG artifact.
    name : str
        Base filename (no extension).
    outdir : str or Path
        Output directory (created if needed).
    fmt : str
        ``"svg"`` or ``"png"``. PNG output drops the embedded equation.
    device_pixel_ratio : float
        Display pixel density for PNG output.

    Returns
    -------
    Path
        Path to the saved file.
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / f"{name}.{fmt}"
    if fmt == "svg":
        path.write_text(svg, encoding="utf-8")
    elif fmt == "png":
        path.write_bytes(svg_to_png(svg, device_pixel_ratio=device_pixel_ratio))
    else:
        raise ValueError(f"Unknown export format {fmt!r}.")
    print(f"  Saved: {path}")
    return path


def export_document(text, output_dir=OUTPUT_DIR, *, engine=None, fmt="svg",
                    display_mode="block", color_mode="css", only_label=None,
                    device_pixel_ratio=1.0):
    """Render and export every equation of a document.

    Parameters
    ----------
    text : str
        Document text.
    output_dir : str or Path
        Directory for output files.
    engine : render_engine.TypesetEngine, optional
        Defaults to a :class:`render_engine.MathtextEngine`.
    fmt : str
        ``"svg"`` or ``"png"``.
    display_mode : str
        ``"block"`` or ``"inline"``.
    color_mode : str
        ``"css"`` or ``"strict"``.
    only_label : str, optional
        Export just the equation with this label.
    device_pixel_ratio : float
        Display pixel density for PNG output.

    Returns
    -------
    tuple of (list of Path, list of (str, str))
        Saved paths, and (label, error) for each equation that failed.
    """
    parsed = parse_document(text, color_mode=color_mode)
    equations = parsed.equations
    if only_label is not None:
        equations = [eq for eq in equations if eq.label == only_label]
        if not equations:
            raise ValueError(f"No equation labeled {only_label!r}.")
        parsed.equations = equations

    print(f"Rendering {len(equations)} equation(s)...")
    results = render_document(parsed, engine or MathtextEngine(),
                              display_mode=display_mode)

    paths = []
    failures = []
    for eq in equations:
        result = results.get(eq.id)
        if result is None or not result.success:
            error = result.error if result is not None else "no result"
            print(f"  FAILED: {eq.label} — {error}")
            failures.append((eq.label, error))
            continue
        artifact = encode_svg(result.svg, eq, display_mode=display_mode)
        paths.append(save_artifact(artifact, _file_stem(eq.label), output_dir,
                                   fmt=fmt,
                                   device_pixel_ratio=device_pixel_ratio))

    print()
    print(f"Export complete: {len(paths)} rendered, {len(failures)} failed")
    return paths, failures


def import_artifacts(paths):
    """Decode SVG artifacts and join their equations into one document."""
    records = []
    for path in paths:
        artifact = decode_svg(Path(path).read_bytes())
        records.extend(artifact.equations)
    return records_to_document(records)


def _read_input(path):
    """Return ``(document_text, global_preamble)`` for a document or project."""
    path = Path(path)
    if path.suffix == ".json":
        project = load_project(path)
        return project.document, project.global_preamble or ""
    return path.read_text(encoding="utf-8"), ""


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Export LaTeX equation documents as round-trip SVG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example document:
  define.brand: #1F77B4
  ---
  E = mc^2 \\label{eq:energy}
  ---
  \\color{brand} a^2 + b^2 = c^2
  % color: #D62728
        """,
    )
    parser.add_argument(
        "--input", "-i", type=str, default=None,
        help="Document text file, or a .json project file.",
    )
    parser.add_argument(
        "--output", "-o", type=str, default=None,
        help=f"Output directory (default: {OUTPUT_DIR}).",
    )
    parser.add_argument(
        "--format", "-f", type=str, default=None, choices=["svg", "png"],
        help=f"Export format (default: {EXPORT_FORMAT}). PNG cannot be "
             "re-imported.",
    )
    parser.add_argument(
        "--equation", "-e", type=str, default=None,
        help="Export only the equation with this label.",
    )
    parser.add_argument(
        "--list", action="store_true",
        help="Print the parsed document as JSON and exit.",
    )
    parser.add_argument(
        "--import-svg", type=str, nargs="+", default=None, metavar="SVG",
        help="Decode exported SVG files back into document text.",
    )
    parser.add_argument(
        "--name", "-n", type=str, default=None,
        help="With --import-svg: write the document (or a .json project) "
             "to this path instead of printing it.",
    )
    parser.add_argument(
        "--display-mode", "-m", type=str, default=None,
        choices=["block", "inline"],
        help=f"Display mode (default: {DISPLAY_MODE}).",
    )
    parser.add_argument(
        "--color-mode", type=str, default=None, choices=["css", "strict"],
        help="How \\color commands are rewritten (default: strict with "
             "--use-latex, css otherwise).",
    )
    parser.add_argument(
        "--use-latex", action="store_true",
        help="Use system LaTeX for rendering.",
    )
    parser.add_argument(
        "--fontsize", type=int, default=None,
        help=f"Block equation font size (default: {EQUATION_FONTSIZE}).",
    )
    parser.add_argument(
        "--dpr", type=float, default=None,
        help=f"Device pixel ratio for PNG export (default: {DEVICE_PIXEL_RATIO}).",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging.",
    )
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format="%(levelname)s %(name)s: %(message)s")

    # Import mode
    if args.import_svg:
        text = import_artifacts(args.import_svg)
        if args.name:
            target = Path(args.name)
            if target.suffix == ".json":
                save_project(new_project(text, name=target.stem), target)
            else:
                target.write_text(text, encoding="utf-8")
            print(f"  Saved: {target}")
        else:
            print(text, end="")
        return

    # Resolve settings: CLI args > constants
    input_file = args.input or INPUT_FILE
    if input_file is None:
        parser.error(
            "No document provided. Use --input to specify a file, "
            "or set INPUT_FILE in the script."
        )

    use_latex = args.use_latex or USE_LATEX
    color_mode = args.color_mode or COLOR_MODE or (
        "strict" if use_latex else "css")
    text, preamble = _read_input(input_file)

    if args.list:
        parsed = parse_document(text, color_mode=color_mode)
        print(json.dumps(parsed.to_dict(), indent=2, ensure_ascii=False))
        return

    engine = MathtextEngine(
        block_fontsize=args.fontsize or EQUATION_FONTSIZE,
        use_latex=use_latex,
        preamble=preamble,
    )
    export_document(
        text,
        args.output or OUTPUT_DIR,
        engine=engine,
        fmt=args.format or EXPORT_FORMAT,
        display_mode=args.display_mode or DISPLAY_MODE,
        color_mode=color_mode,
        only_label=args.equation,
        device_pixel_ratio=args.dpr or DEVICE_PIXEL_RATIO,
    )
    print("Done.")


if __name__ == "__main__":
    main()
