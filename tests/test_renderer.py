"""Tests for in-process rendering: clock, animation stepping, ANSI grid and adapter."""

import re
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.panel import Panel
from rich.text import Text

from visualjudge.capture.adapters.base import CaptureOptions
from visualjudge.capture.adapters.renderer import (
    RendererCaptureAdapter,
    frame_path,
    resolve_render_target,
)
from visualjudge.capture.animation import AnimationController, LogicalClock, frame_interval
from visualjudge.capture.ansi_converter import AnsiConverter, grid_size, svg_page
from visualjudge.errors import CaptureError
from visualjudge.models.scenario import AnimationSpec

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


class FakeRasterizer:
    """Writes a placeholder file per frame instead of launching Chromium."""

    created = []

    def __init__(self, width, height, background="#000000"):
        self.width = width
        self.height = height
        self.svgs = []
        FakeRasterizer.created.append(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def rasterize(self, svg, out):
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(b"png")
        self.svgs.append(svg)
        return out


@pytest.fixture
def fake_rasterizer():
    FakeRasterizer.created = []
    with patch("visualjudge.capture.adapters.renderer.SvgRasterizer", FakeRasterizer):
        yield FakeRasterizer


class TestLogicalClock:
    def test_starts_at_zero_and_advances(self):
        clock = LogicalClock()
        assert clock.now_ms == 0
        assert clock.advance(250) == 250
        assert clock.now_ms == 250

    def test_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            LogicalClock().advance(-1)


class TestAnimationController:
    @pytest.mark.asyncio
    async def test_frames_evenly_spaced(self):
        clock = LogicalClock()
        seen = []
        count = await AnimationController(clock).capture_frames(
            1000, 5, lambda i, t: seen.append((i, t, clock.now_ms)))
        assert count == 5
        assert [t for _, t, _ in seen] == [0, 250, 500, 750, 1000]
        assert [now for _, _, now in seen] == [0, 250, 500, 750, 1000]

    @pytest.mark.asyncio
    async def test_single_frame_at_start(self):
        seen = []
        await AnimationController(LogicalClock()).capture_frames(800, 1, lambda i, t: seen.append(t))
        assert seen == [0]
        assert frame_interval(800, 1) == 800

    @pytest.mark.asyncio
    async def test_zero_frames_captures_nothing(self):
        seen = []
        count = await AnimationController(LogicalClock()).capture_frames(
            800, 0, lambda i, t: seen.append(t))
        assert count == 0
        assert seen == []

    @pytest.mark.asyncio
    async def test_async_handler_awaited(self):
        seen = []

        async def handler(i, t):
            seen.append(i)

        await AnimationController(LogicalClock()).capture_frames(100, 3, handler)
        assert seen == [0, 1, 2]


class TestAnsiConverter:
    def test_grid_size_from_pixels(self):
        cols, rows = grid_size(900, 600)
        assert cols == 73
        assert rows == 24

    def test_grid_is_padded_to_rows(self):
        ansi = AnsiConverter().render_grid(Text("hello"), cols=20, rows=4)
        lines = ansi.split("\n")
        assert len(lines) == 4
        assert "hello" in ANSI_ESCAPE.sub("", lines[0])
        assert all(len(ANSI_ESCAPE.sub("", line)) == 20 for line in lines)

    def test_tall_output_is_cropped(self):
        ansi = AnsiConverter().render_grid("\n".join(f"line {i}" for i in range(10)), cols=20, rows=3)
        plain = ANSI_ESCAPE.sub("", ansi).split("\n")
        assert len(plain) == 3
        assert plain[2].startswith("line 2")

    def test_ansi_colours_survive(self):
        ansi = AnsiConverter().render_grid("\x1b[31mred\x1b[0m", cols=10, rows=1)
        assert "red" in ANSI_ESCAPE.sub("", ansi)
        assert "\x1b[" in ansi

    def test_rich_renderables_supported(self):
        ansi = AnsiConverter().render_grid(Panel("inside"), cols=30, rows=5)
        assert "inside" in ANSI_ESCAPE.sub("", ansi)

    def test_svg_export(self):
        converter = AnsiConverter()
        svg = converter.to_svg(converter.render_grid(Text("hello"), 20, 2), cols=20, title="banner")
        assert svg.lstrip().startswith("<svg")
        assert "hello" in svg

    def test_svg_page_fills_viewport(self):
        page = svg_page("<svg></svg>", "#1e1e1e")
        assert "width:100vw;height:100vh" in page
        assert "<svg></svg>" in page


class TestResolveRenderTarget:
    def test_callable_passes_through(self):
        def render(params, clock):
            return "x"

        assert resolve_render_target(render) is render

    def test_dotted_module(self):
        func = resolve_render_target("os.path:join")
        assert func("a", "b").endswith("b")

    def test_file_relative_to_base_dir(self, tmp_path):
        (tmp_path / "banner_render.py").write_text(
            "def render(params, clock):\n    return params.get('title', '')\n")
        func = resolve_render_target("banner_render.py:render", tmp_path)
        assert func({"title": "Hi"}, None) == "Hi"

    def test_malformed_target(self):
        with pytest.raises(CaptureError, match="module:function"):
            resolve_render_target("no_colon_here")

    def test_missing_module(self):
        with pytest.raises(CaptureError, match="Failed to import"):
            resolve_render_target("visualjudge_missing_module:render")

    def test_missing_function(self):
        with pytest.raises(CaptureError, match="not a callable"):
            resolve_render_target("os.path:no_such_function")


class TestRendererCaptureAdapter:
    def test_frame_path(self):
        assert frame_path(Path("/s/spinner-loading.png"), 3) == Path("/s/spinner-loading_frame_3.png")

    @pytest.mark.asyncio
    async def test_capture_single_frame(self, tmp_path, fake_rasterizer):
        calls = []

        def render(params, clock):
            calls.append((params, clock.now_ms))
            return Text(f"Hello {params['name']}")

        options = CaptureOptions(output_path=tmp_path / "greeting.png", render_target=render,
                                 params={"name": "World"}, width=900, height=600)
        out = await RendererCaptureAdapter().capture(options)

        assert out.exists()
        assert calls == [({"name": "World"}, 0)]
        rasterizer = fake_rasterizer.created[0]
        assert (rasterizer.width, rasterizer.height) == (900, 600)
        assert "Hello" in rasterizer.svgs[0]

    @pytest.mark.asyncio
    async def test_capture_animation_frames(self, tmp_path, fake_rasterizer):
        times = []

        async def render(params, clock):
            times.append(clock.now_ms)
            return f"t={clock.now_ms:.0f}"

        options = CaptureOptions(output_path=tmp_path / "spinner-loading.png", render_target=render)
        paths = await RendererCaptureAdapter().capture_animation(
            options, AnimationSpec(duration=1000, screenshots=3))

        assert [p.name for p in paths] == [
            "spinner-loading_frame_0.png",
            "spinner-loading_frame_1.png",
            "spinner-loading_frame_2.png",
        ]
        assert all(p.exists() for p in paths)
        assert times == [0, 500, 1000]
        assert len(fake_rasterizer.created) == 1

    @pytest.mark.asyncio
    async def test_render_failure_wrapped(self, tmp_path, fake_rasterizer):
        def render(params, clock):
            raise KeyError("title")

        options = CaptureOptions(output_path=tmp_path / "x.png", render_target=render)
        with pytest.raises(CaptureError, match="Render function failed"):
            await RendererCaptureAdapter().capture(options)

    @pytest.mark.asyncio
    async def test_requires_render_target(self, tmp_path):
        with pytest.raises(CaptureError, match="needs a render target"):
            await RendererCaptureAdapter().capture(CaptureOptions(output_path=tmp_path / "x.png"))
