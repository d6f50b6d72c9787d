"""
Render Coordinator for the Equation Editor.

Feeds parsed equations to a typesetting engine and applies color
post-processing to what comes back.

Every submission gets a batch token. Each request carries the batch it
belongs to (frontmatter + equations), and results are checked against the
latest token on completion: results of a batch that has since been
superseded are dropped instead of being colored against the wrong document.
Submissions made before the engine is ready are queued and flushed once, in
submission order.

Usage:
    from render_coordinator import RenderCoordinator

    def on_result(token, result):
        print(token, result.id, result.success)

    coordinator = RenderCoordinator(MathtextEngine(), on_result)
    coordinator.start()
    coordinator.submit(parse_document(text))
"""

import logging
import re
import threading
from dataclasses import dataclass
from functools import partial
from typing import Tuple

from color_resolver import apply_color
from document_parser import Equation, Frontmatter
from render_engine import (
    DEFAULT_DISPLAY_MODE,
    RenderFailure,
    RenderRequest,
    RenderSuccess,
)

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"\\label\{[^}]*\}")
_COMMENT_RE = re.compile(r"(?<!\\)%.*$")


@dataclass(frozen=True)
class RenderBatch:
    token: int
    frontmatter: Frontmatter
    equations: Tuple[Equation, ...]


def prepare_latex(latex):
    """Strip ``\\label{...}`` and ``%`` comments; engines never see either."""
    lines = []
    for line in _LABEL_RE.sub("", latex).split("\n"):
        line = _COMMENT_RE.sub("", line).strip()
        if line:
            lines.append(line)
    return " ".join(lines)


def build_request(equation, display_mode=DEFAULT_DISPLAY_MODE):
    return RenderRequest(equation.id, prepare_latex(equation.latex),
                         display_mode)


class RenderCoordinator:
    """Submit render batches to a shared engine and deliver colored results.

    Parameters
    ----------
    engine : render_engine.TypesetEngine
        The engine shared by every batch.
    on_result : callable
        Called as ``on_result(token, result)`` once per equation of the
        latest batch, with a RenderSuccess (colored SVG) or RenderFailure.
    display_mode : str
        ``"inline"`` or ``"block"``.
    executor : concurrent.futures.Executor, optional
        When given, engine calls run on the executor and results arrive as
        they complete, in no particular order. When None, each batch renders
        synchronously inside ``submit``/``engine_ready``.
    """

    def __init__(self, engine, on_result, display_mode=DEFAULT_DISPLAY_MODE,
                 executor=None):
        self.engine = engine
        self.on_result = on_result
        self.display_mode = display_mode
        self.executor = executor
        self._lock = threading.RLock()
        self._ready = False
        self._pending = []
        self._latest_token = 0

    @property
    def is_ready(self):
        return self._ready

    @property
    def latest_token(self):
        return self._latest_token

    def start(self):
        """Ask the engine to signal readiness."""
        self.engine.start(self.engine_ready)

    def engine_ready(self):
        """Mark the engine ready and flush queued batches in order."""
        with self._lock:
            if self._ready:
                return
            self._ready = True
            pending, self._pending = self._pending, []
        if pending:
            logger.debug("Engine ready, flushing %d queued batch(es)",
                         len(pending))
        for batch in pending:
            self._dispatch(batch)

    def submit(self, parsed):
        """Submit a parsed document for rendering and return its batch token."""
        with self._lock:
            self._latest_token += 1
            batch = RenderBatch(
                token=self._latest_token,
                frontmatter=parsed.frontmatter,
                equations=tuple(parsed.equations),
            )
            if not self._ready:
                self._pending.append(batch)
                logger.debug("Engine not ready, queued batch %d", batch.token)
                return batch.token
        self._dispatch(batch)
        return batch.token

    def _dispatch(self, batch):
        for equation in batch.equations:
            request = build_request(equation, self.display_mode)
            if self.executor is None:
                self._complete(batch, equation, self._render(request))
            else:
                future = self.executor.submit(self._render, request)
                future.add_done_callback(
                    partial(self._on_future_done, batch, equation))

    def _render(self, request):
        try:
            return self.engine.render(request)
        except Exception as exc:
            logger.warning("Engine raised for %s: %s", request.id, exc)
            return RenderFailure(request.id, str(exc) or type(exc).__name__)

    def _on_future_done(self, batch, equation, future):
        self._complete(batch, equation, future.result())

    def _complete(self, batch, equation, result):
        # Check and delivery are atomic with respect to submit.
        with self._lock:
            if batch.token != self._latest_token:
                logger.debug("Dropping result for %s from stale batch %d "
                             "(latest %d)", equation.id, batch.token,
                             self._latest_token)
                return

            if result.success:
                color = equation.color or batch.frontmatter.color
                svg = apply_color(result.svg, color)
                equation.rendered_svg = svg
                result = RenderSuccess(result.id, svg)
            else:
                logger.warning("Render failed for %s (%s): %s",
                               equation.label, equation.id, result.error)

            self.on_result(batch.token, result)


def render_document(parsed, engine, display_mode=DEFAULT_DISPLAY_MODE):
    """Render every equation of a document synchronously.

    The engine must signal readiness from within ``start``.

    Returns
    -------
    dict
        Equation id -> RenderSuccess or RenderFailure.
    """
    results = {}
    coordinator = RenderCoordinator(
        engine, lambda token, result: results.__setitem__(result.id, result),
        display_mode=display_mode,
    )
    coordinator.start()
    coordinator.submit(parsed)
    return results
