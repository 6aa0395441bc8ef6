"""Prompt catalog backed by prompts/prompts.json.

Keys are dotted paths into the JSON object ("directive.system_prompt"). A value is either a
string or a list of lines, and is rendered with ``string.Template`` placeholders.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    """Reads the catalog lazily and re-reads it whenever the file changes on disk."""

    def __init__(self, path: Path = PROMPTS_PATH):
        self.path = path
        self._entries: dict[str, Any] | None = None
        self._loaded_mtime_ns: int | None = None

    def entries(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._entries is None or self._loaded_mtime_ns != mtime_ns:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"{self.path.name} must hold a JSON object")
            self._entries = data
            self._loaded_mtime_ns = mtime_ns
        return self._entries

    def template(self, key: str) -> Template:
        node: Any = self.entries()
        for part in key.split("."):
            try:
                node = node[part]
            except (KeyError, TypeError):
                raise KeyError(f"Prompt key not found: {key}") from None
        if isinstance(node, list) and all(isinstance(line, str) for line in node):
            node = "\n".join(node)
        if not isinstance(node, str):
            raise TypeError(f"Prompt {key} must be a string or a list of lines")
        return Template(node)

    def render(self, key: str, **values: Any) -> str:
        template = self.template(key)
        try:
            return template.substitute(values)
        except KeyError as exc:
            raise KeyError(f"Prompt {key} needs a value for '{exc.args[0]}'") from exc


_default_catalog = PromptCatalog()


def render_prompt(key: str, **values: Any) -> str:
    return _default_catalog.render(key, **values)