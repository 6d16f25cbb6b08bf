"""Tests for configuration, diagram profiling and the renderer document."""

from unittest.mock import patch

import pytest

from core.convert import ConversionConfig, OutputFormat, detect_diagram_kind, profile_for
from core.engine import EngineConfig, RendererDocument, find_renderer_script
from core.render import PipelineConfig


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self):
        """Test default values."""
        config = EngineConfig()
        assert config.pool_max_size == 5
        assert config.viewport == {"width": 1200, "height": 800}
        assert config.verify_on_release is True

    def test_from_env(self):
        """Test loading from environment variables."""
        env = {
            "POOL_MAX_SIZE": "2",
            "VIEWPORT_WIDTH": "800",
            "VERIFY_ON_RELEASE": "false",
            "PUPPETEER_EXECUTABLE_PATH": "/opt/chrome",
        }
        with patch.dict("os.environ", env, clear=True):
            config = EngineConfig.from_env()

        assert config.pool_max_size == 2
        assert config.viewport_width == 800
        assert config.verify_on_release is False
        assert config.executable_path == "/opt/chrome"

    def test_engine_path_precedence(self):
        """Test that RENDER_ENGINE_PATH wins over the legacy variable."""
        env = {"RENDER_ENGINE_PATH": "/a", "PUPPETEER_EXECUTABLE_PATH": "/b"}
        with patch.dict("os.environ", env, clear=True):
            assert EngineConfig.from_env().executable_path == "/a"

    def test_validate(self):
        """Test that a zero pool size is rejected."""
        with pytest.raises(ValueError, match="pool_max_size"):
            EngineConfig(pool_max_size=0).validate()


class TestConversionConfig:
    """Tests for ConversionConfig."""

    def test_from_env(self):
        """Test loading from environment variables."""
        with patch.dict("os.environ", {"RASTER_DENSITY": "150", "PDF_FORMAT": "Letter"}, clear=True):
            config = ConversionConfig.from_env()

        assert config.raster_density == 150
        assert config.pdf_format == "Letter"
        assert config.external_timeout == 10.0

    def test_scaled(self):
        """Test slow-kind timeout stretching."""
        config = ConversionConfig(slow_timeout_factor=2.0)
        assert config.scaled(5.0, slow=False) == 5.0
        assert config.scaled(5.0, slow=True) == 10.0

    def test_validate(self):
        """Test that a shrinking factor is rejected."""
        with pytest.raises(ValueError):
            ConversionConfig(slow_timeout_factor=0.5).validate()


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self):
        """Test default time bounds."""
        config = PipelineConfig()
        assert config.render_timeout(pooled=True) == 6.0
        assert config.render_timeout(pooled=False) == 8.0
        assert config.request_deadline == 60.0

    def test_from_env(self):
        """Test loading from environment variables."""
        env = {"BLOCK_RESOURCES": "0", "REQUEST_DEADLINE": "30"}
        with patch.dict("os.environ", env, clear=True):
            config = PipelineConfig.from_env()

        assert config.block_resources is False
        assert config.request_deadline == 30.0

    def test_validate(self):
        """Test that a non-positive deadline is rejected."""
        with pytest.raises(ValueError, match="request_deadline"):
            PipelineConfig(request_deadline=0).validate()


class TestOutputFormat:
    """Tests for OutputFormat.parse."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("svg", OutputFormat.SVG),
            ("PNG", OutputFormat.PNG),
            (" pdf ", OutputFormat.PDF),
            ("vector", OutputFormat.SVG),
            ("raster", OutputFormat.PNG),
            ("document", OutputFormat.PDF),
        ],
    )
    def test_parse(self, value, expected):
        """Test names and aliases."""
        assert OutputFormat.parse(value) is expected

    @pytest.mark.parametrize("value", ["gif", "", None, 3])
    def test_parse_invalid(self, value):
        """Test rejected values."""
        with pytest.raises(ValueError):
            OutputFormat.parse(value)

    def test_content_types(self):
        """Test media types."""
        assert OutputFormat.SVG.content_type == "image/svg+xml"
        assert OutputFormat.PNG.content_type == "image/png"
        assert OutputFormat.PDF.content_type == "application/pdf"


class TestDiagramKind:
    """Tests for diagram kind detection."""

    @pytest.mark.parametrize(
        "description,kind",
        [
            ("graph TD\n  A-->B\n", "graph"),
            ("\n\n  sequenceDiagram\n", "sequencediagram"),
            ("%% a comment\nflowchart LR\n", "flowchart"),
            ("---\ntitle: Demo\n---\nmindmap\n  root\n", "mindmap"),
            ("%%{init: {'theme': 'dark'}}%%\nclassDiagram\n", "classdiagram"),
            ("", "unknown"),
        ],
    )
    def test_detect(self, description, kind):
        """Test detection across front matter, comments and directives."""
        assert detect_diagram_kind(description) == kind

    def test_mindmap_profile(self):
        """Test that mindmaps are slow, direct-rendered and repaired."""
        profile = profile_for("mindmap\n  root\n")
        assert profile.slow and profile.direct_render and profile.needs_repair

    def test_graph_profile(self):
        """Test that flowcharts use the default path."""
        profile = profile_for("graph TD\n  A-->B\n")
        assert not (profile.slow or profile.direct_render or profile.needs_repair)


class TestRendererDocument:
    """Tests for RendererDocument."""

    def test_inline_script_escaped(self):
        """Test that a closing script tag inside the runtime cannot end the element."""
        document = RendererDocument(script="var s = '</script>';")
        assert "'<\\/script>'" in document.runtime_tag()

    def test_cdn_fallback(self):
        """Test that a missing local runtime falls back to the CDN."""
        config = EngineConfig(mermaid_script_path="/nonexistent/mermaid.min.js")
        with patch("core.engine.document.SCRIPT_SEARCH_PATHS", []):
            document = RendererDocument.from_config(config)

        assert not document.is_local
        assert config.mermaid_cdn_url in document.base_html()

    def test_local_script(self, tmp_path):
        """Test that a configured runtime file is inlined."""
        script = tmp_path / "mermaid.min.js"
        script.write_text("window.mermaid = {};")

        assert find_renderer_script(str(script)) == script
        document = RendererDocument.from_config(EngineConfig(mermaid_script_path=str(script)))
        assert document.is_local
        assert "window.mermaid = {};" in document.base_html()

    def test_base_and_one_shot_documents(self):
        """Test startOnLoad and description escaping."""
        document = RendererDocument(script="")
        assert "startOnLoad: false" in document.base_html()

        one_shot = document.html_with("graph TD\n  A-->B<script>\n")
        assert "startOnLoad: true" in one_shot
        assert "A--&gt;B&lt;script&gt;" in one_shot

    def test_runtime_url(self):
        """Test recognition of runtime fetches."""
        document = RendererDocument()
        assert document.is_runtime_url("https://cdn.jsdelivr.net/npm/mermaid@11/dist/mermaid.min.js")
        assert not document.is_runtime_url("https://example.com/logo.png")
