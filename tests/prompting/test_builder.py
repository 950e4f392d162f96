"""Tests for the prompt builder."""

from __future__ import annotations

import dataclasses

import pytest

from docsite.errors import PlanIssue
from docsite.models import DocPlan, PlannedPage, ProtectedRegion
from docsite.postproc.markers import begin_marker, end_marker
from docsite.prompting.builder import PromptBuilder, describe_context, plan_signature
from docsite.prompting.constants import (
    CORRECTIVE_HEADER,
    FRAMEWORK_GUIDANCE,
    MANIFEST_SHAPE,
    PAGE_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    TEMPLATE_GUIDANCE,
)


@pytest.fixture
def tree(repo_builder):
    repo_builder.write(
        {
            "README.md": "# Sample\n",
            "src/app.py": "def main():\n    return 1\n",
            "src/util.py": "VALUE = 2\n",
            "docs.md": "Example:\n```sh\nrun\n```\n",
        }
    )
    (repo_builder.path() / "logo.png").write_bytes(b"\x89PNG\x00\x00binary")
    return repo_builder.scan()


def test_summarize_tree_lists_paths_sizes_and_languages(tree) -> None:
    summary = PromptBuilder().summarize_tree(tree)

    lines = summary.splitlines()
    assert "src/" in lines
    assert "src/app.py  25 B  Python" in lines
    assert any(line.startswith("logo.png") and line.endswith("binary") for line in lines)
    assert "def main" not in summary


def test_summarize_tree_elides_beyond_entry_cap(tree) -> None:
    summary = PromptBuilder(max_tree_entries=2).summarize_tree(tree)

    lines = summary.splitlines()
    assert len(lines) == 3
    assert lines[-1] == "... 4 more entries elided"


def test_plan_prompt_includes_guidance_shape_and_tree(tree, python_profile) -> None:
    profile = dataclasses.replace(python_profile, framework="FastAPI")

    request = PromptBuilder().build_plan_prompt(tree, profile, max_depth=3)

    assert request.system == PLAN_SYSTEM_PROMPT
    assert "Project: sample" in request.prompt
    assert "Framework: FastAPI" in request.prompt
    assert FRAMEWORK_GUIDANCE["FastAPI"] in request.prompt
    assert f"- {TEMPLATE_GUIDANCE['python'][0]}" in request.prompt
    assert "at most 3 levels deep" in request.prompt
    assert MANIFEST_SHAPE in request.prompt
    assert "src/util.py" in request.prompt
    assert CORRECTIVE_HEADER not in request.prompt


def test_plan_prompt_appends_corrective_instruction(tree, python_profile) -> None:
    issues = [PlanIssue("unknown-source", "source 'lib' does not exist", page="api.md")]

    request = PromptBuilder().build_plan_prompt(tree, python_profile, max_depth=3, issues=issues)

    assert request.prompt.endswith(
        f"{CORRECTIVE_HEADER}\n- [unknown-source] api.md: source 'lib' does not exist"
    )


def test_collect_context_expands_directories_and_reports_missing(tree) -> None:
    page = PlannedPage(
        id="api",
        path="api.md",
        title="API",
        sources=("src", "src/app.py", "gone.py", "logo.png"),
    )

    context = PromptBuilder().collect_context(page, tree)

    assert [item.path for item in context.files] == ["src/app.py", "src/util.py", "logo.png"]
    assert context.missing == ["gone.py"]
    assert context.files[0].text == "def main():\n    return 1\n"
    assert context.files[2].inlined is False
    assert context.files[2].note == "binary"
    assert describe_context(context) == {"files": 3, "inlined": 2, "bytes": 35, "truncated": 0}


def test_collect_context_respects_file_and_total_budgets(tree) -> None:
    page = PlannedPage(id="api", path="api.md", title="API", sources=("src",))

    too_large = PromptBuilder(max_file_bytes=20).collect_context(page, tree)
    assert too_large.files[0].note == "too large to inline"
    assert too_large.files[1].inlined is True

    exhausted = PromptBuilder(max_context_bytes=30).collect_context(page, tree)
    assert exhausted.files[0].inlined is True
    assert exhausted.files[1].note == "context budget exhausted"
    assert exhausted.truncated == 1
    assert exhausted.inlined_bytes == 25


def test_page_prompt_inlines_sources_and_lists_placeholders(tree, python_profile) -> None:
    plan = DocPlan(
        pages=[
            PlannedPage(id="index", path="index.md", title="Home"),
            PlannedPage(id="guide", path="guide.md", title="Guide", position=1),
            PlannedPage(id="guide/usage", path="guide/usage.md", title="Usage", parent="guide", sources=("docs.md",)),
            PlannedPage(id="guide/faq", path="guide/faq.md", title="FAQ", position=1, parent="guide"),
        ]
    )
    page = plan.get("guide/usage")
    builder = PromptBuilder()
    context = builder.collect_context(page, tree)
    regions = [ProtectedRegion(region_id="notes", content="mine\n", heading="## Notes")]

    request = builder.build_page_prompt(page, plan, python_profile, context, regions)

    assert request.system == PAGE_SYSTEM_PROMPT
    prompt = request.prompt
    assert prompt.splitlines()[1] == "Page: Usage (guide/usage.md)"
    assert "Parent page: Guide" in prompt
    assert "Sibling pages: FAQ" in prompt
    assert "- `notes` under ## Notes:" in prompt
    assert f"  {begin_marker('notes')}" in prompt
    assert f"  {end_marker('notes')}" in prompt
    assert "```` docs.md\nExample:\n```sh\nrun\n```\n````" in prompt


def test_page_prompt_without_sources(tree, python_profile) -> None:
    page = PlannedPage(id="index", path="index.md", title="Home")
    plan = DocPlan(pages=[page])
    builder = PromptBuilder()

    request = builder.build_page_prompt(page, plan, python_profile, builder.collect_context(page, tree))

    assert "Source files:\n(none)" in request.prompt
    assert "Parent page: (top level)" in request.prompt


def test_plan_signature_tracks_planning_inputs(python_profile) -> None:
    base = plan_signature(python_profile, max_depth=3)

    assert plan_signature(python_profile, max_depth=3) == base
    assert plan_signature(python_profile, max_depth=2) != base
    assert plan_signature(dataclasses.replace(python_profile, project_type="rust"), max_depth=3) != base
