"""Protected-region markers: parsing existing pages and merging regenerated bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from itertools import groupby
from typing import Dict, Iterable, List, Optional

from ..errors import ProtectedRegionError
from ..models import ProtectedRegion

BEGIN_FMT = "<!-- docsite:protected:begin:{id} -->"
END_FMT = "<!-- docsite:protected:end:{id} -->"

_MARKER_RE = re.compile(
    r"^<!--\s*docsite:protected:(?P<kind>begin|end):(?P<id>[A-Za-z0-9_.-]+)\s*-->$"
)
_MARKER_HINT = "docsite:protected:"
_HEADING_RE = re.compile(r"^#{1,6}[ \t]+(\S.*)$")
_FENCES = ("```", "~~~")


def begin_marker(region_id: str) -> str:
    return BEGIN_FMT.format(id=region_id)


def end_marker(region_id: str) -> str:
    return END_FMT.format(id=region_id)


def heading_text(line: str) -> str:
    """Return the text of a Markdown ATX heading without its level or closing hashes."""
    match = _HEADING_RE.match(line.strip())
    if not match:
        return line.strip()
    return re.sub(r"[ \t]+#+$", "", match.group(1)).strip()


@dataclass(frozen=True)
class Segment:
    """One arena entry: a line of plain text or a reference to a region."""

    text: str
    region_id: Optional[str] = None
    heading: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return self.region_id is None and not self.text.strip()


@dataclass
class ParsedDocument:
    """A page split into plain-text segments and opaque protected regions."""

    segments: List[Segment] = field(default_factory=list)
    regions: Dict[str, ProtectedRegion] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    open_fence: Optional[str] = None

    def render(self, contents: Optional[Dict[str, str]] = None) -> str:
        source = contents if contents is not None else {
            region_id: region.content for region_id, region in self.regions.items()
        }
        parts: List[str] = []
        for segment in self.segments:
            if segment.region_id is None:
                parts.append(segment.text)
            else:
                parts.append(_render_region(segment.region_id, source.get(segment.region_id, "")))
        return "".join(parts)


@dataclass
class MergeResult:
    """Outcome of merging a regenerated body with the page on disk."""

    text: str
    placed: List[str] = field(default_factory=list)
    relocated: List[str] = field(default_factory=list)
    appended: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class MarkerManager:
    """Extracts protected regions and re-applies them to regenerated pages."""

    def extract(self, markdown: str) -> ParsedDocument:
        """Parse *markdown* strictly; malformed markers raise ``ProtectedRegionError``."""
        return self._parse(markdown, strict=True)

    def regions(self, markdown: str) -> List[ProtectedRegion]:
        return list(self.extract(markdown).regions.values())

    def wrap(self, region_id: str, content: str) -> str:
        """Return *content* wrapped in a protected region."""
        if not _MARKER_RE.match(begin_marker(region_id)):
            raise ProtectedRegionError(f"Invalid protected region id '{region_id}'")
        return _render_region(region_id, _terminate(content))

    def merge(self, new_body: str, existing: Optional[str]) -> MergeResult:
        """Carry every protected region of *existing* into *new_body*.

        Placeholders in the new body receive the old content verbatim. Regions
        without a placeholder go to the end of the section whose heading matches
        their original heading, or to the end of the page when no single heading
        matches.
        """
        old = self.extract(existing) if existing else ParsedDocument()
        body = _terminate(new_body.rstrip("\n")) if new_body.strip() else ""
        new = self._parse(body, strict=False, known=old.regions.keys())
        if new.open_fence:
            body += f"{new.open_fence}\n"
            new = self._parse(body, strict=False, known=old.regions.keys())

        result = MergeResult(text="", warnings=list(new.warnings))
        contents = {region_id: region.content for region_id, region in old.regions.items()}
        items = list(new.segments)
        result.placed = [segment.region_id for segment in items if segment.region_id]

        leftovers: List[ProtectedRegion] = []
        for region in old.regions.values():
            if region.region_id in result.placed:
                continue
            position = self._section_end(items, region.heading)
            if position is None:
                leftovers.append(region)
                continue
            items.insert(position, Segment(text="", region_id=region.region_id))
            result.relocated.append(region.region_id)

        text = ParsedDocument(segments=items).render(contents)
        for heading, group in groupby(leftovers, key=lambda region: region.heading):
            text += "\n" + f"{heading}\n" + "\n"
            for region in group:
                text += _render_region(region.region_id, region.content)
                result.appended.append(region.region_id)
                result.warnings.append(
                    f"protected region '{region.region_id}' appended at end of page: "
                    f"heading '{heading}' has no unique match"
                )

        result.text = _terminate(text.rstrip("\n")) if text.strip() else ""
        return result

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _section_end(items: List[Segment], heading: Optional[str]) -> Optional[int]:
        if heading is None:
            start = 0
        else:
            wanted = heading_text(heading)
            matches = [
                index
                for index, segment in enumerate(items)
                if segment.heading is not None and heading_text(segment.heading) == wanted
            ]
            if len(matches) != 1:
                return None
            start = matches[0] + 1
        end = len(items)
        for index in range(start, len(items)):
            if items[index].heading is not None:
                end = index
                break
        while end > start and items[end - 1].is_blank:
            end -= 1
        return end

    def _parse(
        self,
        markdown: str,
        *,
        strict: bool,
        known: Iterable[str] = (),
    ) -> ParsedDocument:
        document = ParsedDocument()
        known_ids = set(known)
        heading: Optional[str] = None
        fence: Optional[str] = None
        open_id: Optional[str] = None
        open_line = 0
        open_heading: Optional[str] = None
        body: List[str] = []
        dropped: set[str] = set()

        def problem(message: str) -> None:
            if strict:
                raise ProtectedRegionError(message)
            document.warnings.append(message)

        lines = markdown.splitlines(keepends=True)
        for number, line in enumerate(lines, start=1):
            stripped = line.strip()
            marker = _MARKER_RE.match(stripped)
            looks_like_marker = stripped.startswith("<!--") and _MARKER_HINT in stripped

            if open_id is not None:
                if marker and marker.group("kind") == "end" and marker.group("id") == open_id:
                    document.regions[open_id] = ProtectedRegion(
                        region_id=open_id,
                        content="".join(body),
                        heading=open_heading,
                        start_line=open_line,
                        end_line=number,
                    )
                    document.segments.append(Segment(text="", region_id=open_id))
                    open_id = None
                    body = []
                elif looks_like_marker:
                    problem(f"line {number}: unexpected marker inside protected region '{open_id}'")
                else:
                    body.append(line)
                continue

            if fence is not None:
                if stripped.startswith(fence):
                    fence = None
                document.segments.append(Segment(text=line))
                continue

            if marker and marker.group("kind") == "begin":
                region_id = marker.group("id")
                if region_id in document.regions:
                    problem(f"line {number}: duplicate protected region id '{region_id}'")
                    dropped.add(region_id)
                    continue
                if not strict and region_id not in known_ids:
                    document.warnings.append(
                        f"line {number}: placeholder '{region_id}' has no protected region to restore; markers dropped"
                    )
                    dropped.add(region_id)
                    continue
                open_id = region_id
                open_line = number
                open_heading = heading
                continue
            if marker and marker.group("id") in dropped:
                continue
            if marker or looks_like_marker:
                problem(f"line {number}: stray or malformed protected marker '{stripped}'")
                continue

            for token in _FENCES:
                if stripped.startswith(token):
                    fence = token
                    break
            heading_line = None
            if fence is None and _HEADING_RE.match(stripped):
                heading = stripped
                heading_line = stripped
            document.segments.append(Segment(text=line, heading=heading_line))

        if open_id is not None:
            problem(f"line {open_line}: protected region '{open_id}' is never closed")
            # Reparse without the dangling begin marker so its lines are ordinary text.
            remaining = lines[: open_line - 1] + lines[open_line:]
            reparsed = self._parse("".join(remaining), strict=False, known=known_ids - {open_id})
            reparsed.warnings[:0] = document.warnings
            return reparsed
        document.open_fence = fence
        return document


def _render_region(region_id: str, content: str) -> str:
    return f"{begin_marker(region_id)}\n{content}{end_marker(region_id)}\n"


def _terminate(text: str) -> str:
    if not text or text.endswith("\n"):
        return text
    return text + "\n"


__all__ = [
    "BEGIN_FMT",
    "END_FMT",
    "MarkerManager",
    "MergeResult",
    "ParsedDocument",
    "Segment",
    "begin_marker",
    "end_marker",
    "heading_text",
]
