"""Tests for protected-region parsing and merging."""

from __future__ import annotations

import pytest

from docsite.errors import ProtectedRegionError
from docsite.postproc.markers import MarkerManager, begin_marker, end_marker, heading_text


def _region(region_id: str, content: str) -> str:
    return f"{begin_marker(region_id)}\n{content}{end_marker(region_id)}\n"


def test_extract_records_regions_with_headings_and_ignores_fenced_markers() -> None:
    document = (
        "# Title\n\nIntro.\n"
        + _region("intro", "manual intro\n")
        + "\n## Usage\n\n```md\n"
        + begin_marker("example")
        + "\n```\n\n"
        + _region("usage", "Keep usage.\n\nTwo paragraphs.\n")
    )

    parsed = MarkerManager().extract(document)

    assert list(parsed.regions) == ["intro", "usage"]
    assert parsed.regions["intro"].heading == "# Title"
    assert parsed.regions["intro"].content == "manual intro\n"
    assert parsed.regions["usage"].heading == "## Usage"
    assert parsed.regions["usage"].content == "Keep usage.\n\nTwo paragraphs.\n"
    assert parsed.render() == document


@pytest.mark.parametrize(
    "document",
    [
        _region("a", "x\n") + _region("a", "y\n"),
        "# T\n" + begin_marker("a") + "\nnever closed\n",
        "# T\n" + end_marker("a") + "\n",
        begin_marker("a") + "\n" + _region("b", "inner\n") + end_marker("a") + "\n",
        "<!-- docsite:protected:begin: bad id -->\n",
    ],
    ids=["duplicate", "unterminated", "stray-end", "nested", "malformed"],
)
def test_extract_rejects_malformed_markers(document: str) -> None:
    with pytest.raises(ProtectedRegionError):
        MarkerManager().extract(document)


def test_wrap_validates_region_id() -> None:
    manager = MarkerManager()

    assert manager.wrap("notes", "Hello") == _region("notes", "Hello\n")
    with pytest.raises(ProtectedRegionError):
        manager.wrap("bad id", "Hello")


def test_heading_text_strips_level_and_closing_hashes() -> None:
    assert heading_text("## Usage ##") == "Usage"
    assert heading_text("### Setup") == "Setup"


def test_placeholder_receives_old_content_verbatim() -> None:
    existing = "# T\n\n" + _region("a", "kept\n")
    new_body = "# T\n\nNew text.\n\n" + _region("a", "model rewrote this\n")

    result = MarkerManager().merge(new_body, existing)

    assert result.text == "# T\n\nNew text.\n\n" + _region("a", "kept\n")
    assert result.placed == ["a"]
    assert result.relocated == []
    assert result.warnings == []


def test_region_without_placeholder_goes_to_end_of_matching_section() -> None:
    existing = "# T\n\n## Notes\n\n" + _region("n", "mine\n") + "\n## Other\n\nx\n"
    new_body = "# T\n\nIntro.\n\n## Notes\n\nGenerated notes.\n\n## Other\n\nNew other.\n"

    result = MarkerManager().merge(new_body, existing)

    assert result.text == (
        "# T\n\nIntro.\n\n## Notes\n\nGenerated notes.\n"
        + _region("n", "mine\n")
        + "\n## Other\n\nNew other.\n"
    )
    assert result.relocated == ["n"]
    assert result.warnings == []


def test_region_before_first_heading_stays_in_preamble() -> None:
    existing = _region("top", "banner\n") + "# T\n\nold\n"

    result = MarkerManager().merge("# T\n\nnew\n", existing)

    assert result.text == _region("top", "banner\n") + "# T\n\nnew\n"


def test_region_with_missing_heading_is_appended_with_warning() -> None:
    existing = "# T\n\n## Legacy\n\n" + _region("l", "old stuff\n")

    result = MarkerManager().merge("# T\n\nFresh.\n", existing)

    assert result.text == "# T\n\nFresh.\n\n## Legacy\n\n" + _region("l", "old stuff\n")
    assert result.appended == ["l"]
    assert len(result.warnings) == 1
    assert "appended" in result.warnings[0]


def test_ambiguous_heading_match_appends_region() -> None:
    existing = "# T\n\n## Notes\n\n" + _region("n", "mine\n")
    new_body = "# T\n\n## Notes\n\nfirst\n\n## Notes\n\nsecond\n"

    result = MarkerManager().merge(new_body, existing)

    assert result.appended == ["n"]
    assert result.text.endswith("second\n\n## Notes\n\n" + _region("n", "mine\n"))


@pytest.mark.parametrize(
    ("existing", "new_body"),
    [
        ("# T\n\n" + _region("a", "kept\n"), "# T\n\nNew.\n\n" + _region("a", "")),
        (
            "# T\n\n## Notes\n\n" + _region("n", "mine\n") + "\n## Other\n\nx\n",
            "# T\n\n## Notes\n\nGenerated.\n\n## Other\n\nNew other.\n",
        ),
        (_region("top", "banner\n") + "# T\n\nold\n", "# T\n\nnew\n"),
        ("# T\n\n## Legacy\n\n" + _region("l", "old\n"), "# T\n\nFresh.\n"),
        (
            "# T\n\n## A\n\n" + _region("x", "1\n") + _region("y", "2\n") + "\n## Gone\n\n" + _region("z", "3\n"),
            "# T\n\n## A\n\nbody\n",
        ),
    ],
    ids=["placeholder", "relocated", "preamble", "appended", "mixed"],
)
def test_merge_is_idempotent(existing: str, new_body: str) -> None:
    manager = MarkerManager()

    once = manager.merge(new_body, existing).text
    twice = manager.merge(new_body, once).text

    assert twice == once


def test_unknown_placeholder_keeps_its_content_as_text() -> None:
    new_body = "# T\n\n" + _region("ghost", "hello\n")

    result = MarkerManager().merge(new_body, None)

    assert result.text == "# T\n\nhello\n"
    assert any("ghost" in warning for warning in result.warnings)


def test_unterminated_placeholder_is_ignored_and_region_relocated() -> None:
    existing = "# T\n\n" + _region("a", "old\n")
    new_body = "# T\n\n" + begin_marker("a") + "\nrest\n"

    result = MarkerManager().merge(new_body, existing)

    assert result.text == "# T\n\nrest\n" + _region("a", "old\n")
    assert result.relocated == ["a"]
    assert any("never closed" in warning for warning in result.warnings)


def test_open_code_fence_is_closed() -> None:
    result = MarkerManager().merge("# T\n\n```python\nprint(1)\n", None)

    assert result.text == "# T\n\n```python\nprint(1)\n```\n"


def test_merge_without_existing_page_terminates_body() -> None:
    assert MarkerManager().merge("# T", None).text == "# T\n"
