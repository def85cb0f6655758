"""Dive manifests: named, switchable context for a focused work session.

A manifest is markdown with YAML frontmatter (name, source, created) and a
body of ``##`` sections (Intent, Focus, Constraints, Relevant Knowledge,
Workflow). Named manifests live in ``.wm/dives/<name>.md``; the unnamed
working manifest is ``.wm/dive_context.md``. ``.wm/dives/.current`` holds
the active name; when it is absent the working manifest is current.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import frontmatter

from wm.errors import AlreadyExists, CannotDeleteCurrent, NotFound
from wm.state import WMState, atomic_write_text, read_text

logger = logging.getLogger(__name__)

CURRENT_POINTER = ".current"
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

_SECTION_INTENT = "Intent"
_SECTION_FOCUS = "Focus"
_SECTION_CONSTRAINTS = "Constraints"
_SECTION_KNOWLEDGE = "Relevant Knowledge"
_SECTION_WORKFLOW = "Workflow"


def validate_name(name: str) -> str:
    if not _NAME_RE.match(name or ""):
        raise ValueError(
            f"Invalid dive name {name!r}: use letters, digits, '.', '_' or '-', "
            "starting with a letter or digit"
        )
    return name


def _split_sections(body: str) -> dict[str, str]:
    sections: dict[str, str] = {}
    current: str | None = None
    lines: list[str] = []
    for line in body.splitlines():
        if line.startswith("## "):
            if current is not None:
                sections[current] = "\n".join(lines).strip()
            current = line[3:].strip()
            lines = []
        elif current is not None:
            lines.append(line)
    if current is not None:
        sections[current] = "\n".join(lines).strip()
    return sections


def _list_items(text: str) -> list[str]:
    items = []
    for line in text.splitlines():
        line = line.strip()
        line = re.sub(r"^(?:[-*•]|\d+[.)])\s*", "", line)
        if line:
            items.append(line)
    return items


@dataclass
class DiveManifest:
    """Grounding context for one focused session."""

    name: str
    intent: str = ""
    focus: str = ""
    constraints: list[str] = field(default_factory=list)
    knowledge: str = ""
    workflow: list[str] = field(default_factory=list)
    source: str = "manual"
    created: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def body(self) -> str:
        parts = [f"# Dive: {self.name}"]
        if self.intent:
            parts.append(f"## {_SECTION_INTENT}\n\n{self.intent.strip()}")
        if self.focus:
            parts.append(f"## {_SECTION_FOCUS}\n\n{self.focus.strip()}")
        if self.constraints:
            items = "\n".join(f"- {c}" for c in self.constraints)
            parts.append(f"## {_SECTION_CONSTRAINTS}\n\n{items}")
        if self.knowledge:
            parts.append(f"## {_SECTION_KNOWLEDGE}\n\n{self.knowledge.strip()}")
        if self.workflow:
            steps = "\n".join(f"{i}. {s}" for i, s in enumerate(self.workflow, start=1))
            parts.append(f"## {_SECTION_WORKFLOW}\n\n{steps}")
        return "\n\n".join(parts) + "\n"

    def render(self) -> str:
        post = frontmatter.Post(
            self.body(), name=self.name, source=self.source, created=self.created
        )
        return frontmatter.dumps(post) + "\n"

    @classmethod
    def parse(cls, text: str, name: str | None = None) -> DiveManifest:
        post = frontmatter.loads(text)
        sections = _split_sections(post.content)
        return cls(
            name=str(post.metadata.get("name") or name or ""),
            intent=sections.get(_SECTION_INTENT, ""),
            focus=sections.get(_SECTION_FOCUS, ""),
            constraints=_list_items(sections.get(_SECTION_CONSTRAINTS, "")),
            knowledge=sections.get(_SECTION_KNOWLEDGE, ""),
            workflow=_list_items(sections.get(_SECTION_WORKFLOW, "")),
            source=str(post.metadata.get("source", "manual")),
            created=str(post.metadata.get("created", "")),
        )


class DiveContextManager:
    """Create, switch, save and delete dive manifests for one project."""

    def __init__(self, state: WMState) -> None:
        self.state = state

    @property
    def pointer_path(self) -> Path:
        return self.state.dives_dir / CURRENT_POINTER

    def path_for(self, name: str) -> Path:
        return self.state.dives_dir / f"{validate_name(name)}.md"

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def _existing(self, name: str) -> Path:
        """Path of a stored manifest; an invalid or unknown name is NotFound."""
        if not _NAME_RE.match(name or ""):
            raise NotFound(f"Dive '{name}' not found")
        path = self.state.dives_dir / f"{name}.md"
        if not path.is_file():
            raise NotFound(f"Dive '{name}' not found")
        return path

    # ── Pointer ───────────────────────────────────────────────

    def current(self) -> str | None:
        """Active manifest name, or None when the working manifest is current."""
        name = read_text(self.pointer_path).strip()
        if not name:
            return None
        if not _NAME_RE.match(name) or not (self.state.dives_dir / f"{name}.md").is_file():
            logger.warning("Dive pointer names a missing manifest %r, using working manifest", name)
            return None
        return name

    def _set_current(self, name: str | None) -> None:
        if name is None:
            self.pointer_path.unlink(missing_ok=True)
        else:
            atomic_write_text(self.pointer_path, f"{name}\n")

    def current_content(self) -> str:
        """Body of the current manifest (frontmatter removed); "" if there is none."""
        name = self.current()
        path = self.state.dives_dir / f"{name}.md" if name else self.state.working_dive_path
        text = read_text(path)
        if not text.strip():
            return ""
        return frontmatter.loads(text).content.strip()

    # ── Queries ───────────────────────────────────────────────

    def list(self) -> list[str]:
        if not self.state.dives_dir.is_dir():
            return []
        return sorted(
            p.stem for p in self.state.dives_dir.glob("*.md") if _NAME_RE.match(p.stem)
        )

    def load(self, name: str) -> DiveManifest:
        path = self._existing(name)
        return DiveManifest.parse(path.read_text(encoding="utf-8"), name=name)

    def show(self, name: str | None = None) -> str:
        """Raw manifest text; the current manifest when no name is given."""
        if name is not None:
            return self._existing(name).read_text(encoding="utf-8")
        current = self.current()
        if current:
            return self.path_for(current).read_text(encoding="utf-8")
        return read_text(self.state.working_dive_path)

    # ── Mutations ─────────────────────────────────────────────

    def new(
        self,
        name: str,
        *,
        intent: str = "",
        focus: str = "",
        constraints: tuple[str, ...] | list[str] = (),
        knowledge: str = "",
        workflow: tuple[str, ...] | list[str] = (),
        source: str = "manual",
        overwrite: bool = False,
    ) -> DiveManifest:
        """Write a named manifest and make it current."""
        path = self.path_for(name)
        if path.exists() and not overwrite:
            raise AlreadyExists(f"Dive '{name}' already exists (use overwrite)")
        manifest = DiveManifest(
            name=name,
            intent=intent,
            focus=focus,
            constraints=list(constraints),
            knowledge=knowledge,
            workflow=list(workflow),
            source=source,
        )
        atomic_write_text(path, manifest.render())
        self._set_current(name)
        logger.info("Created dive %s", name)
        return manifest

    def switch(self, name: str) -> None:
        self._existing(name)
        self._set_current(name)
        logger.info("Switched to dive %s", name)

    def save(self, name: str, overwrite: bool = False) -> Path:
        """Snapshot the working manifest under ``name`` and make it current."""
        path = self.path_for(name)
        text = read_text(self.state.working_dive_path)
        if not text.strip():
            raise NotFound("No working dive context to save (.wm/dive_context.md)")
        if path.exists() and not overwrite:
            raise AlreadyExists(f"Dive '{name}' already exists (use overwrite)")

        post = frontmatter.loads(text)
        post.metadata["name"] = name
        post.metadata.setdefault("source", "working")
        post.metadata.setdefault("created", datetime.now().isoformat(timespec="seconds"))
        atomic_write_text(path, frontmatter.dumps(post) + "\n")
        self._set_current(name)
        logger.info("Saved working dive context as %s", name)
        return path

    def delete(self, name: str) -> None:
        path = self._existing(name)
        if self.current() == name:
            raise CannotDeleteCurrent(f"Dive '{name}' is current; switch or clear first")
        path.unlink()
        logger.info("Deleted dive %s", name)

    def clear(self) -> None:
        """Unset the pointer so the working manifest becomes current."""
        self._set_current(None)
