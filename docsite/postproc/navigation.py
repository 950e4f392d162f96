"""Render the VitePress navigation/config artifact from a DocPlan."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..errors import OutputWriteError
from ..logging import get_logger
from ..models import DocPlan, PlannedPage, ProjectProfile
from ..writer import write_if_changed

CONFIG_TEMPLATE = "vitepress.config.mts.j2"
CONFIG_RELATIVE_PATH = Path(".vitepress") / "config.mts"
PUBLIC_DIRNAME = "public"

logger = get_logger("navigation")


def page_link(page: PlannedPage) -> str:
    """Clean URL for *page*; ``index`` pages map to their directory."""
    identifier = page.id
    if identifier == "index":
        return "/"
    if identifier.endswith("/index"):
        return "/" + identifier[: -len("index")]
    return "/" + identifier


class NavigationBuilder:
    """Builds nav and sidebar structures and renders the site config."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).resolve().parent.parent / "templates"
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def nav(self, plan: DocPlan) -> List[Dict[str, str]]:
        items: List[Dict[str, str]] = []
        for page in plan.roots():
            link = page_link(page)
            item = {"text": page.title, "link": link, "active_match": ""}
            if plan.children(page.id) and link != "/":
                item["active_match"] = link if link.endswith("/") else link + "/"
            items.append(item)
        return items

    def sidebar(self, plan: DocPlan) -> List[Dict[str, object]]:
        groups: List[Dict[str, object]] = []
        for page in plan.roots():
            group: Dict[str, object] = {"text": page.title, "collapsed": False}
            items = [{"text": "Overview", "link": page_link(page)}]
            items.extend(self._items(plan, page.id))
            group["items"] = items
            groups.append(group)
        return groups

    def _items(self, plan: DocPlan, parent: str) -> List[Dict[str, object]]:
        entries: List[Dict[str, object]] = []
        for child in plan.children(parent):
            entry: Dict[str, object] = {"text": child.title, "link": page_link(child)}
            nested = self._items(plan, child.id)
            if nested:
                entry["collapsed"] = True
                entry["items"] = nested
            entries.append(entry)
        return entries

    def render(self, plan: DocPlan, profile: ProjectProfile) -> str:
        template = self._env.get_template(CONFIG_TEMPLATE)
        logo = profile.variables.get("LOGO_PATH", "")
        return template.render(
            project_name=profile.variables.get("PROJECT_NAME", "") or "Documentation",
            project_description=profile.variables.get("PROJECT_DESCRIPTION", ""),
            logo_path=f"/{Path(logo).name}" if logo else "",
            nav=self.nav(plan),
            sidebar=self.sidebar(plan),
        )

    def write(
        self,
        plan: DocPlan,
        profile: ProjectProfile,
        output_dir: Path,
        *,
        project_root: Optional[Path] = None,
    ) -> str:
        """Write ``.vitepress/config.mts`` and copy the logo into ``public/``."""
        outcome = write_if_changed(output_dir / CONFIG_RELATIVE_PATH, self.render(plan, profile))
        logo = profile.variables.get("LOGO_PATH", "")
        if logo and project_root is not None:
            self._copy_logo(project_root / logo, output_dir / PUBLIC_DIRNAME / Path(logo).name)
        logger.info("Site config %s", outcome)
        return outcome

    @staticmethod
    def _copy_logo(source: Path, target: Path) -> None:
        if not source.is_file():
            logger.warning("Logo %s not found; skipping copy", source)
            return
        if target.exists() and target.read_bytes() == source.read_bytes():
            return
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            raise OutputWriteError(f"Unable to copy logo to {target}: {exc}") from exc


__all__ = ["CONFIG_RELATIVE_PATH", "NavigationBuilder", "PUBLIC_DIRNAME", "page_link"]
