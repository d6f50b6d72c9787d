"""
Pytest configuration and shared fixtures for the Equation Editor tests.
"""
import pytest

from render_engine import RenderFailure, RenderSuccess, TypesetEngine


SAMPLE_DOCUMENT = """\
color: $brand
define.brand: #FF0000AA
define.accent: rgba(0, 128, 255, 0.5)
---
E = mc^2 \\label{eq:energy}
---
\\color{accent} a^2 + b^2 = c^2
% color: $accent
---
\\int_0^1 x \\, dx
"""


class FakeEngine(TypesetEngine):
    """Engine double: records requests, fails on latex containing 'FAIL'.

    With ``auto_ready=False`` readiness is signalled later by calling
    ``signal_ready()``.
    """

    def __init__(self, auto_ready=True):
        self.auto_ready = auto_ready
        self.requests = []
        self._on_ready = None

    def start(self, on_ready):
        self._on_ready = on_ready
        if self.auto_ready:
            on_ready()

    def signal_ready(self):
        self._on_ready()

    def render(self, request):
        self.requests.append(request)
        if "FAIL" in request.latex:
            return RenderFailure(request.id, "Undefined control sequence")
        return RenderSuccess(
            request.id,
            '<svg width="10ex" height="2ex" viewBox="0 0 100 20">'
            '<g stroke="currentColor" fill="currentColor">'
            '<path fill="black" d="M0 0h10v10z"/></g></svg>',
        )


@pytest.fixture
def sample_document():
    return SAMPLE_DOCUMENT


@pytest.fixture
def fake_engine():
    return FakeEngine()
