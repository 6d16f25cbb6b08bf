"""In-page JavaScript evaluated against render sessions."""

# Mermaid exposes both batch and direct rendering once initialized.
RENDERER_READY_CHECK = """
() => !!(window.mermaid
    && typeof window.mermaid.run === 'function'
    && typeof window.mermaid.render === 'function')
"""

# Renders into the .mermaid container of an already-initialized page.
# Resolves to {ok, error} instead of rejecting so the caller gets Mermaid's message.
RENDER_DESCRIPTION = """
async ({ code, direct }) => {
  const container = document.querySelector('.mermaid');
  if (!container) {
    return { ok: false, error: 'Render container is missing from the document' };
  }
  container.innerHTML = '';
  const mermaid = window.mermaid;
  if (!mermaid) {
    return { ok: false, error: 'Mermaid runtime is not loaded' };
  }
  try {
    if (!direct && typeof mermaid.run === 'function') {
      const source = document.createElement('div');
      source.className = 'mermaid-source';
      source.textContent = code;
      container.appendChild(source);
      await mermaid.run({ nodes: [source] });
      const svg = source.querySelector('svg');
      if (svg) {
        container.innerHTML = '';
        container.appendChild(svg);
      }
    } else if (typeof mermaid.render === 'function') {
      const id = 'mermaid-' + Date.now() + '-' + Math.floor(Math.random() * 1000000);
      const result = await mermaid.render(id, code);
      container.innerHTML = result.svg;
    } else {
      return { ok: false, error: 'Mermaid runtime exposes neither run() nor render()' };
    }
    return { ok: true, error: null };
  } catch (err) {
    return { ok: false, error: String((err && err.message) || err) };
  }
}
"""

VECTOR_OUTPUT_READY = """
() => {
  const svg = document.querySelector('.mermaid svg');
  return svg !== null && svg.querySelector('g') !== null;
}
"""

EXTRACT_VECTOR_OUTPUT = """
() => {
  const svg = document.querySelector('.mermaid svg');
  return svg ? svg.outerHTML : null;
}
"""

# Empties the container and reports whether the runtime survived the request.
RECYCLE_SURFACE = """
() => {
  const container = document.querySelector('.mermaid');
  if (container) container.innerHTML = '';
  return !!(window.mermaid && typeof window.mermaid.render === 'function');
}
"""

MEASURE_VECTOR_OUTPUT = """
() => {
  const svg = document.querySelector('.mermaid svg');
  if (!svg) return null;
  const rect = svg.getBoundingClientRect();
  let width = rect.width || parseFloat(svg.getAttribute('width')) || 0;
  let height = rect.height || parseFloat(svg.getAttribute('height')) || 0;
  const viewBox = svg.getAttribute('viewBox');
  if (viewBox && (!svg.getAttribute('width') || !svg.getAttribute('height'))) {
    const parts = viewBox.trim().split(/[\\s,]+/).map(Number);
    if (parts.length === 4 && parts[2] > 0 && parts[3] > 0) {
      width = parts[2];
      height = parts[3];
    }
  }
  return { width: Math.ceil(width), height: Math.ceil(height) };
}
"""

LAYOUT_STABLE = """
() => {
  const svg = document.querySelector('.mermaid svg');
  if (!svg) return false;
  const rect = svg.getBoundingClientRect();
  return rect.width > 0 && rect.height > 0;
}
"""

# Scrolls the output into view and measures it after the next paint.
CLIP_REGION = """
(margin) => {
  const svg = document.querySelector('.mermaid svg');
  if (!svg) return null;
  svg.scrollIntoView({ behavior: 'instant', block: 'center' });
  return new Promise((resolve) => {
    requestAnimationFrame(() => {
      const rect = svg.getBoundingClientRect();
      const style = window.getComputedStyle(svg);
      resolve({
        x: Math.max(0, Math.floor(rect.x) - margin),
        y: Math.max(0, Math.floor(rect.y) - margin),
        width: Math.ceil(rect.width) + margin * 2,
        height: Math.ceil(rect.height) + margin * 2,
        visible: rect.width > 0 && rect.height > 0 && style.display !== 'none',
      });
    });
  });
}
"""

VECTOR_OUTPUT_SELECTOR = ".mermaid svg"
