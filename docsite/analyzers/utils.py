"""Shared helper utilities for detection rules."""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

# Python dependency helpers


def load_python_dependencies(root: Path) -> List[str]:
    """Collect Python dependencies from requirements.txt and pyproject.toml."""
    deps: Set[str] = set()

    requirements = root / "requirements.txt"
    if requirements.exists():
        deps.update(_parse_requirements(requirements))

    pyproject = root / "pyproject.toml"
    if pyproject.exists():
        deps.update(_parse_pyproject_dependencies(_load_toml(pyproject)))

    return sorted(deps)


def _parse_requirements(path: Path) -> List[str]:
    packages: List[str] = []
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return packages
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-r")):
            continue
        name = re.split(r"[<>=!~\[;]", stripped, maxsplit=1)[0].strip()
        if name:
            packages.append(name)
    return packages


def _load_toml(path: Path) -> Dict[str, object]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _parse_pyproject_dependencies(data: Dict[str, object]) -> List[str]:
    packages: Set[str] = set()
    dependencies: List[object] = []
    project = data.get("project")
    if isinstance(project, dict):
        dependencies.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        for values in optional.values():
            dependencies.extend(values or [])

    tool = data.get("tool")
    poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
    if isinstance(poetry, dict):
        poetry_deps = poetry.get("dependencies", {}) or {}
        dependencies.extend(poetry_deps.keys())

    for dep in dependencies:
        if isinstance(dep, str):
            name = re.split(r"[<>=!~\[;]", dep, maxsplit=1)[0].strip()
            if name and name.lower() != "python":
                packages.add(name)
    return sorted(packages)


# Node.js helpers


def load_package_json(root: Path) -> Dict[str, object]:
    """Return the parsed package.json contents or an empty dict."""
    package_json = root / "package.json"
    if not package_json.exists():
        return {}
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(data, dict):
        return data
    return {}


def load_node_dependencies(root: Path) -> List[str]:
    """Return runtime and dev dependency names from package.json."""
    data = load_package_json(root)
    names: Set[str] = set()
    for key in ("dependencies", "devDependencies"):
        deps = data.get(key, {})
        if isinstance(deps, dict):
            names.update(deps.keys())
    return sorted(names)


# Java helpers


def load_java_dependencies(root: Path) -> List[str]:
    """Collect Java dependencies from pom.xml and build.gradle files."""
    deps: Set[str] = set()
    pom = root / "pom.xml"
    if pom.exists():
        deps.update(_parse_pom_dependencies(pom))

    for name in ("build.gradle", "build.gradle.kts"):
        gradle = root / name
        if gradle.exists():
            try:
                deps.update(_parse_gradle_dependencies(gradle.read_text(encoding="utf-8")))
            except OSError:
                continue

    return sorted(deps)


def _parse_pom_dependencies(path: Path) -> Set[str]:
    deps: Set[str] = set()
    try:
        root = ET.fromstring(path.read_text(encoding="utf-8"))
    except (OSError, ET.ParseError):
        return deps

    namespace = _detect_xml_namespace(root)
    tag = f"{{{namespace}}}dependency" if namespace else "dependency"
    group_tag = f"{{{namespace}}}groupId" if namespace else "groupId"
    artifact_tag = f"{{{namespace}}}artifactId" if namespace else "artifactId"

    for dep in root.findall(f".//{tag}"):
        group = dep.findtext(group_tag, default="")
        artifact = dep.findtext(artifact_tag, default="")
        if group and artifact:
            deps.add(f"{group}:{artifact}")
    return deps


def _detect_xml_namespace(element: ET.Element) -> str | None:
    match = re.match(r"\{(.+)}", element.tag)
    return match.group(1) if match else None


def _parse_gradle_dependencies(content: str) -> Set[str]:
    deps: Set[str] = set()
    pattern = re.compile(r"['\"]([\w\-.]+:[\w\-.]+)(?::[\w\-.]+)?['\"]")
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        if any(token in line for token in ("implementation", "api", "compile", "runtimeOnly")):
            match = pattern.search(line)
            if match:
                deps.add(match.group(1))
    return deps


# Framework heuristics

_PYTHON_FRAMEWORKS = {
    "fastapi": "FastAPI",
    "django": "Django",
    "flask": "Flask",
}

_NODE_FRAMEWORKS = {
    "next": "Next.js",
    "nuxt": "Nuxt",
    "react": "React",
    "vue": "Vue",
    "svelte": "Svelte",
    "express": "Express",
}


def detect_python_framework(dependencies: Iterable[str]) -> Optional[str]:
    lower_deps = {dep.lower() for dep in dependencies}
    for key, label in _PYTHON_FRAMEWORKS.items():
        if key in lower_deps:
            return label
    return None


def detect_node_framework(dependencies: Iterable[str]) -> Optional[str]:
    lower = {dep.lower() for dep in dependencies}
    for key, label in _NODE_FRAMEWORKS.items():
        if key in lower:
            return label
    return None


def detect_java_framework(dependencies: Iterable[str]) -> Optional[str]:
    for dep in dependencies:
        lower = dep.lower()
        if "spring-boot" in lower or "springframework" in lower:
            return "Spring Boot"
    return None


# Template variables

_LOGO_CANDIDATES = (
    "logo.svg",
    "logo.png",
    "icon.svg",
    "assets/logo.svg",
    "assets/logo.png",
    "docs/public/logo.svg",
    "docs/public/logo.png",
    "public/logo.svg",
    "public/logo.png",
    "static/logo.svg",
    "static/logo.png",
    ".github/logo.svg",
    ".github/logo.png",
)


def read_project_metadata(root: Path) -> Dict[str, str]:
    """Return name and description declared by the first manifest that has them."""
    metadata: Dict[str, str] = {}

    pyproject = _load_toml(root / "pyproject.toml") if (root / "pyproject.toml").exists() else {}
    project = pyproject.get("project") if isinstance(pyproject.get("project"), dict) else {}
    tool = pyproject.get("tool") if isinstance(pyproject.get("tool"), dict) else {}
    poetry = tool.get("poetry") if isinstance(tool.get("poetry"), dict) else {}

    cargo = _load_toml(root / "Cargo.toml") if (root / "Cargo.toml").exists() else {}
    cargo_package = cargo.get("package") if isinstance(cargo.get("package"), dict) else {}

    package_json = load_package_json(root)

    for source in (project, poetry, package_json, cargo_package):
        for key in ("name", "description"):
            value = source.get(key)
            if key not in metadata and isinstance(value, str) and value.strip():
                metadata[key] = value.strip()
    return metadata


def find_logo(existing: Iterable[str]) -> Optional[str]:
    """Return the first conventional logo path present in *existing*."""
    present = set(existing)
    for candidate in _LOGO_CANDIDATES:
        if candidate in present:
            return candidate
    return None
