"""HTML documents hosting the Mermaid runtime."""

import html
import logging
from pathlib import Path
from typing import List, Optional

from .config import EngineConfig

logger = logging.getLogger(__name__)

# Searched in order when no explicit script path is configured
SCRIPT_SEARCH_PATHS = [
    Path("node_modules/mermaid/dist/mermaid.min.js"),
    Path("../node_modules/mermaid/dist/mermaid.min.js"),
    Path("/usr/lib/node_modules/mermaid/dist/mermaid.min.js"),
    Path("/usr/local/lib/node_modules/mermaid/dist/mermaid.min.js"),
]

# Hosts and path fragments that identify the runtime itself
RUNTIME_URL_MARKERS = ("mermaid", "jsdelivr")

_STYLE = """
    body { margin: 0; padding: 20px; background: white; }
    .mermaid { display: flex; justify-content: center; }
    *, *::before, *::after {
      animation-duration: 0s !important;
      animation-delay: 0s !important;
      transition-duration: 0s !important;
      transition-delay: 0s !important;
    }
"""

_INITIALIZE = """
    mermaid.initialize({
      startOnLoad: %s,
      theme: 'default',
      securityLevel: 'loose',
      themeVariables: { animationDuration: 0 }
    });
"""


def find_renderer_script(configured: Optional[str] = None) -> Optional[Path]:
    """
    Locate a local copy of the Mermaid runtime.

    Args:
        configured: Explicit script path (used only if it exists)

    Returns:
        Path to mermaid.min.js, or None when only the CDN is available
    """
    candidates: List[Path] = []
    if configured:
        candidates.append(Path(configured))
    candidates.extend(SCRIPT_SEARCH_PATHS)

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


class RendererDocument:
    """Builds the pages that sessions load: base (empty) and one-shot (with description)."""

    def __init__(self, script: Optional[str] = None, cdn_url: str = EngineConfig.mermaid_cdn_url):
        self.script = script
        self.cdn_url = cdn_url

    @classmethod
    def from_config(cls, config: EngineConfig) -> "RendererDocument":
        """Load the runtime from disk when available, else fall back to the CDN."""
        path = find_renderer_script(config.mermaid_script_path)
        if path is None:
            logger.warning(
                f"Mermaid runtime not found locally, pages will load it from {config.mermaid_cdn_url}"
            )
            return cls(script=None, cdn_url=config.mermaid_cdn_url)

        script = path.read_text(encoding="utf-8")
        logger.info(f"Loaded Mermaid runtime from {path} ({len(script) / 1024:.1f} KB)")
        return cls(script=script, cdn_url=config.mermaid_cdn_url)

    @property
    def is_local(self) -> bool:
        return self.script is not None

    def runtime_tag(self) -> str:
        if self.script is None:
            return f'<script src="{html.escape(self.cdn_url, quote=True)}"></script>'
        # An inline script ends at the first "</script", wherever it appears
        return "<script>" + self.script.replace("</script", "<\\/script") + "</script>"

    def base_html(self) -> str:
        """Document with an empty container and the runtime initialized."""
        return self._render(container="", start_on_load=False)

    def html_with(self, description: str) -> str:
        """Document that renders ``description`` as soon as it loads."""
        return self._render(container=html.escape(description), start_on_load=True)

    def is_runtime_url(self, url: str) -> bool:
        """Whether a sub-resource request fetches the runtime itself."""
        lowered = url.lower()
        return any(marker in lowered for marker in RUNTIME_URL_MARKERS)

    def _render(self, container: str, start_on_load: bool) -> str:
        initialize = _INITIALIZE % ("true" if start_on_load else "false")
        return (
            "<!DOCTYPE html>\n"
            "<html>\n<head>\n"
            '  <meta charset="utf-8">\n'
            f"  <style>{_STYLE}  </style>\n"
            f"  {self.runtime_tag()}\n"
            "</head>\n<body>\n"
            f'  <div class="mermaid">{container}</div>\n'
            f"  <script>{initialize}  </script>\n"
            "</body>\n</html>"
        )
