"""Tests for SVG structural repair."""

import re

import pytest

from core.convert.repair import (
    ensure_dimensions,
    ensure_namespace,
    prepare_for_rasterization,
    repair_vector_markup,
    strip_executable_content,
)

NS = 'xmlns="http://www.w3.org/2000/svg"'


def group_balance(markup: str) -> int:
    opens = len([m for m in re.finditer(r"<g\b[^>]*>", markup) if not m.group(0).endswith("/>")])
    return opens - len(re.findall(r"</g\s*>", markup))


class TestRepairVectorMarkup:
    """Tests for repair_vector_markup."""

    def test_closes_missing_groups(self):
        """Test that missing </g> tags go before the root close."""
        repaired = repair_vector_markup("<svg><g><g></svg>")
        assert repaired == f"<svg {NS}><g><g></g></g></svg>"

    def test_collapses_duplicate_root_closes(self):
        """Test that extra trailing </svg> tags are removed."""
        repaired = repair_vector_markup(f"<svg {NS}><g></g></svg></svg></svg>")
        assert repaired == f"<svg {NS}><g></g></svg>"

    def test_appends_missing_root_close(self):
        """Test that a document without a root close is terminated."""
        repaired = repair_vector_markup(f"<svg {NS}><g><rect/>")
        assert repaired == f"<svg {NS}><g><rect/></g></svg>"

    def test_strips_scripts_and_comments(self):
        """Test that executable content is removed."""
        markup = f'<svg {NS}><script>alert(1)</script><!-- note --><g></g></svg>'
        repaired = repair_vector_markup(markup)
        assert "<script" not in repaired
        assert "<!--" not in repaired

    def test_removes_event_handlers_from_root(self):
        """Test that on* attributes are dropped from the opening tag."""
        repaired = repair_vector_markup('<svg onload="evil()" width="10"><g></g></svg>')
        assert "onload" not in repaired
        assert repaired.startswith(f'<svg {NS} width="10">')

    def test_no_root_returned_unchanged(self):
        """Test that markup without an svg element is left alone."""
        markup = "<div><g></div>"
        assert repair_vector_markup(markup) == markup

    def test_self_closing_groups_ignored(self):
        """Test that <g/> does not count as an open group."""
        repaired = repair_vector_markup(f"<svg {NS}><g/><g></g></svg>")
        assert repaired == f"<svg {NS}><g/><g></g></svg>"

    def test_nested_svg_kept(self):
        """Test that nested svg elements keep their own closing tags."""
        markup = f"<svg {NS}><g><svg><g></g></svg></g></svg>"
        assert repair_vector_markup(markup) == markup

    @pytest.mark.parametrize(
        "markup",
        [
            f"<svg {NS}><g></g></svg>",
            f'<svg {NS} viewBox="0 0 10 10"><g class="a"><g><path d="M0 0"/></g></g></svg>',
            f"<svg {NS}><defs></defs><g><text>x &lt; y</text></g></svg>",
        ],
    )
    def test_idempotent_on_well_formed(self, markup):
        """Test that well-formed markup is unchanged, and repair is idempotent."""
        once = repair_vector_markup(markup)
        assert once == markup
        assert repair_vector_markup(once) == once

    @pytest.mark.parametrize("missing", [1, 2, 5])
    def test_balances_groups(self, missing):
        """Test that group opens and closes balance after repair."""
        markup = f"<svg {NS}>" + "<g>" * (missing + 1) + "</g></svg>"
        repaired = repair_vector_markup(markup)
        assert group_balance(repaired) == 0
        assert repaired.endswith("</svg>")
        assert repaired.count("</svg>") == 1


class TestRasterizationHelpers:
    """Tests for the in-process rasterizer helpers."""

    def test_strip_executable_content(self):
        """Test script and comment removal."""
        markup = "<svg><script type='text/javascript'>x()</script><!--c--><g/></svg>"
        assert strip_executable_content(markup) == "<svg><g/></svg>"

    def test_ensure_namespace_adds(self):
        """Test that a missing namespace is added."""
        assert ensure_namespace("<svg><g/></svg>") == f"<svg {NS}><g/></svg>"

    def test_ensure_namespace_keeps(self):
        """Test that an existing namespace is kept."""
        markup = f"<svg {NS}><g/></svg>"
        assert ensure_namespace(markup) == markup

    def test_ensure_dimensions_missing(self):
        """Test that width and height are added when absent."""
        result = ensure_dimensions("<svg><g/></svg>", 400, 300)
        assert result == '<svg width="400" height="300"><g/></svg>'

    def test_ensure_dimensions_percentage_replaced(self):
        """Test that percentage sizes become pixel sizes."""
        result = ensure_dimensions('<svg width="100%" height="50%"><g/></svg>', 400, 300)
        assert 'width="400"' in result
        assert 'height="300"' in result

    def test_ensure_dimensions_absolute_kept(self):
        """Test that absolute sizes are preserved."""
        result = ensure_dimensions('<svg width="120" height="80"><g/></svg>', 400, 300)
        assert 'width="120"' in result
        assert 'height="80"' in result

    def test_prepare_with_repair(self):
        """Test the full preparation with repair enabled."""
        result = prepare_for_rasterization("<svg><g><script>x</script>", 200, 100, repair=True)
        assert result.startswith(f'<svg {NS} width="200" height="100">')
        assert result.endswith("</g></svg>")
        assert "<script" not in result
