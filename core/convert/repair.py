"""Heuristic structural repair of SVG markup.

These are plain string transformations, not an XML parser. They assume the
dominant imbalance in renderer output is unclosed ``<g>`` groups, which holds
for the tree-shaped diagrams that produce malformed markup. Imbalances spread
across several element kinds are not handled.
"""

import re

SVG_NAMESPACE = "http://www.w3.org/2000/svg"

_SCRIPT_RE = re.compile(r"<script\b[^>]*?(?:/>|>.*?</script\s*>)", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SVG_OPEN_RE = re.compile(r"<svg\b([^>]*)>", re.IGNORECASE)
_SVG_CLOSE_RE = re.compile(r"</svg\s*>", re.IGNORECASE)
_GROUP_OPEN_RE = re.compile(r"<g\b[^>]*>", re.IGNORECASE)
_GROUP_CLOSE_RE = re.compile(r"</g\s*>", re.IGNORECASE)
_EVENT_ATTR_RE = re.compile(r"""\s+on[a-z]+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)
_XMLNS_RE = re.compile(r"\sxmlns\s*=", re.IGNORECASE)


def _count_open_tags(pattern: re.Pattern, text: str) -> int:
    """Count opening tags, ignoring self-closing ones."""
    return sum(1 for m in pattern.finditer(text) if not m.group(0).endswith("/>"))


def strip_executable_content(markup: str) -> str:
    """Remove script elements and comments."""
    markup = _SCRIPT_RE.sub("", markup)
    return _COMMENT_RE.sub("", markup)


def canonical_open_tag(attrs: str) -> str:
    """Root opening tag without event handlers and with the SVG namespace."""
    attrs = _EVENT_ATTR_RE.sub("", attrs)
    if not _XMLNS_RE.search(attrs):
        attrs = f' xmlns="{SVG_NAMESPACE}"' + attrs
    return f"<svg{attrs}>"


def repair_vector_markup(markup: str) -> str:
    """
    Best-effort fix-up of malformed SVG markup.

    Strips scripts and comments, closes unbalanced ``<g>`` groups just
    before the root closing tag, collapses duplicate trailing root closing
    tags and normalizes the root opening tag.

    Args:
        markup: SVG markup, possibly malformed

    Returns:
        Repaired markup, or the input unchanged when it has no <svg> root
    """
    cleaned = strip_executable_content(markup)
    root = _SVG_OPEN_RE.search(cleaned)
    if root is None:
        return markup

    attrs = root.group(1)
    if attrs.rstrip().endswith("/"):
        attrs = attrs.rstrip()[:-1]

    head = cleaned[: root.start()]
    rest = cleaned[root.end():].rstrip()

    # Root plus any nested <svg> elements that still need a closing tag
    svg_opens = 1 + _count_open_tags(_SVG_OPEN_RE, rest)
    svg_closes = len(_SVG_CLOSE_RE.findall(rest))

    while svg_closes > svg_opens:
        last = list(_SVG_CLOSE_RE.finditer(rest))[-1]
        rest = (rest[: last.start()] + rest[last.end():]).rstrip()
        svg_closes -= 1

    missing = _count_open_tags(_GROUP_OPEN_RE, rest) - len(_GROUP_CLOSE_RE.findall(rest))
    group_closes = "</g>" * max(0, missing)

    if svg_closes == svg_opens:
        last = list(_SVG_CLOSE_RE.finditer(rest))[-1]
        rest = rest[: last.start()] + group_closes + rest[last.start(): last.end()]
    else:
        rest = rest + group_closes + "</svg>" * (svg_opens - svg_closes)

    return head + canonical_open_tag(attrs) + rest


def ensure_namespace(markup: str) -> str:
    """Add the SVG namespace to the root opening tag when it is missing."""
    root = _SVG_OPEN_RE.search(markup)
    if root is None or _XMLNS_RE.search(root.group(1)):
        return markup
    tag = f'<svg xmlns="{SVG_NAMESPACE}"{root.group(1)}>'
    return markup[: root.start()] + tag + markup[root.end():]


def _set_dimension(attrs: str, name: str, value: int) -> str:
    pattern = re.compile(rf"""(\s{name}\s*=\s*)(["'])([^"']*)\2""", re.IGNORECASE)
    match = pattern.search(attrs)
    if match is None:
        return f'{attrs} {name}="{value}"'

    current = match.group(3).strip()
    if current and not current.endswith("%"):
        return attrs

    quote = match.group(2)
    replacement = f"{match.group(1)}{quote}{value}{quote}"
    return attrs[: match.start()] + replacement + attrs[match.end():]


def ensure_dimensions(markup: str, width: int, height: int) -> str:
    """
    Give the root element explicit pixel width and height.

    Existing absolute values are kept; missing or percentage values are
    replaced.
    """
    root = _SVG_OPEN_RE.search(markup)
    if root is None:
        return markup

    attrs = root.group(1)
    self_closing = attrs.rstrip().endswith("/")
    if self_closing:
        attrs = attrs.rstrip()[:-1]

    attrs = _set_dimension(attrs, "width", width)
    attrs = _set_dimension(attrs, "height", height)
    tag = f"<svg{attrs}{' /' if self_closing else ''}>"
    return markup[: root.start()] + tag + markup[root.end():]


def prepare_for_rasterization(markup: str, width: int, height: int, repair: bool = False) -> str:
    """Markup ready for a standalone rasterizer."""
    if repair:
        markup = repair_vector_markup(markup)
    markup = strip_executable_content(markup)
    markup = ensure_namespace(markup)
    return ensure_dimensions(markup, width, height)
