from __future__ import annotations

import json
import os

import pytest

from profile_scout.services.prompt_store import PromptCatalog, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "planner.user_prompt",
        name="Alice Smith",
        context="Acme Corp",
        interests="rust, sailing",
    )
    assert "Name: Alice Smith" in prompt
    assert "Interests: rust, sailing" in prompt


def test_list_entries_are_joined_into_lines():
    prompt = render_prompt("directive.system_prompt")
    assert "SEARCH: <search query>\nNAVIGATE: <absolute url>" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_reports_missing_values():
    with pytest.raises(KeyError, match="name"):
        render_prompt("synthesis.user_prompt", findings="", contact="")


def test_catalog_is_reloaded_after_edit(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"greeting": "hello $who"}), encoding="utf-8")
    catalog = PromptCatalog(path)

    assert catalog.render("greeting", who="alice") == "hello alice"
    path.write_text(json.dumps({"greeting": ["hi $who", "bye"]}), encoding="utf-8")
    # Force a different mtime regardless of filesystem timestamp resolution.
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    assert catalog.render("greeting", who="bob") == "hi bob\nbye"


def test_catalog_must_be_an_object(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        PromptCatalog(path).render("anything")


def test_non_text_entry_is_rejected(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"group": {"nested": 3}}), encoding="utf-8")
    catalog = PromptCatalog(path)
    with pytest.raises(TypeError):
        catalog.render("group.nested")
    with pytest.raises(KeyError):
        catalog.render("group.nested.deeper")
