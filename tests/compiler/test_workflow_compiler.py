"""Tests for flowspine.compiler.compiler — content injection."""

from __future__ import annotations

import json

import pytest

from flowspine.compiler import REFERENCE_KEY, ContentKind, WorkflowCompiler
from flowspine.core.errors import WorkflowNotFoundError, WorkflowStructureError


def _node(name: str, node_type: str, **parameters) -> dict:
    return {"name": name, "type": node_type, "parameters": parameters}


def _code(name: str, **parameters) -> dict:
    return _node(name, "n8n-nodes-base.code", **parameters)


def _doc(*nodes, **fields) -> dict:
    return {"name": "Orders", "nodes": list(nodes), **fields}


def _params(result, index: int = 0) -> dict:
    return result.document["nodes"][index]["parameters"]


# ── Scripts ──────────────────────────────────────────────────────────────


class TestScriptInjection:
    """Script-bearing nodes receive raw file text."""

    def test_greet_end_to_end(self, compiler, write_content):
        """Key 'greet' with print("hi") compiles to exactly that, reference gone."""
        write_content("code", "greet.py", 'print("hi")')
        result = compiler.compile(_doc(_code("Greet", nodeContent={"script": "greet"})))

        params = _params(result)
        assert params["pythonCode"] == 'print("hi")'
        assert REFERENCE_KEY not in params
        assert result.missing == []
        assert result.injected[0].field == "pythonCode"

    def test_js_preferred_over_py(self, compiler, write_content):
        write_content("code", "both.js", "return items;")
        write_content("code", "both.py", "return items")
        result = compiler.compile(_doc(_code("Both", nodeContent={"script": "both"})))

        params = _params(result)
        assert params["jsCode"] == "return items;"
        assert "pythonCode" not in params

    def test_legacy_alias_pins_language(self, compiler, write_content):
        write_content("code", "both.js", "return items;")
        write_content("code", "both.py", "return items")
        result = compiler.compile(_doc(_code("Both", nodeContent={"pythonCode": "both"})))

        params = _params(result)
        assert params["pythonCode"] == "return items"
        assert "jsCode" not in params

    def test_function_node_uses_function_code(self, compiler, write_content):
        write_content("code", "legacy.js", "return items;")
        node = _node("Legacy", "n8n-nodes-base.function", nodeContent={"script": "legacy"})
        result = compiler.compile(_doc(node))

        assert _params(result)["functionCode"] == "return items;"

    def test_file_text_preserved_exactly(self, compiler, write_content):
        text = "const a = 1;\n\n// trailing whitespace   \n"
        write_content("code", "exact.js", text)
        result = compiler.compile(_doc(_code("Exact", nodeContent={"script": "exact"})))

        assert _params(result)["jsCode"] == text


# ── Prompts ──────────────────────────────────────────────────────────────


class TestPromptInjection:
    """Prompt-bearing nodes get the dynamic-expression marker."""

    def test_prompt_gets_marker(self, compiler, write_content):
        write_content("prompts", "triage.md", "Classify {{ $json.subject }}")
        node = _node("Triage", "n8n-nodes-base.openAi", nodeContent={"prompt": "triage"})
        result = compiler.compile(_doc(node))

        assert _params(result)["prompt"] == "=Classify {{ $json.subject }}"

    def test_marker_not_doubled(self, compiler, write_content):
        write_content("prompts", "already.md", "=Already dynamic")
        node = _node("P", "n8n-nodes-base.openAi", nodeContent={"prompt": "already"})
        result = compiler.compile(_doc(node))

        assert _params(result)["prompt"] == "=Already dynamic"

    def test_txt_fallback(self, compiler, write_content):
        write_content("prompts", "plain.txt", "hello")
        node = _node("P", "n8n-nodes-base.anthropic", nodeContent={"prompt": "plain"})
        result = compiler.compile(_doc(node))

        assert _params(result)["prompt"] == "=hello"

    def test_agent_system_message(self, compiler, write_content):
        write_content("prompts", "agent.md", "You are helpful.")
        node = _node("Agent", "@n8n/n8n-nodes-langchain.agent", nodeContent={"prompt": "agent"})
        result = compiler.compile(_doc(node))

        params = _params(result)
        assert params["systemMessage"] == "=You are helpful."
        assert "prompt" not in params

    def test_conversational_replaces_messages(self, compiler, write_content):
        write_content("prompts", "chat.md", "Summarize this")
        node = _node(
            "Chain",
            "@n8n/n8n-nodes-langchain.chainLlm",
            messages={"messageValues": [{"message": "old 1"}, {"message": "old 2"}]},
            nodeContent={"prompt": "chat"},
        )
        result = compiler.compile(_doc(node))

        assert _params(result)["messages"] == {"messageValues": [{"message": "=Summarize this"}]}

    def test_claude_message_hint(self, compiler, write_content):
        write_content("prompts", "ask.md", "What is 2+2?")
        node = _node(
            "Ask",
            "n8n-nodes-base.httpRequest",
            nodeContent={"prompt": "ask", "promptType": "claude_message"},
        )
        result = compiler.compile(_doc(node))

        params = _params(result)
        assert params["prompt"] == "=What is 2+2?"
        assert params["messages"] == [{"role": "user", "content": "What is 2+2?"}]
        assert REFERENCE_KEY not in params


# ── Verbatim kinds ───────────────────────────────────────────────────────


class TestVerbatimInjection:
    @pytest.mark.parametrize(
        "kind,subdir,file_name,field",
        [
            ("query", "sql", "totals.sql", "query"),
            ("data", "data", "totals.json", "jsonBody"),
            ("template", "templates", "totals.html", "html"),
        ],
    )
    def test_injected_without_marker(self, compiler, write_content, kind, subdir, file_name, field):
        write_content(subdir, file_name, "SELECT 1 -- {{x}}")
        node = _node("N", "n8n-nodes-base.postgres", nodeContent={kind: "totals"})
        result = compiler.compile(_doc(node))

        assert _params(result)[field] == "SELECT 1 -- {{x}}"

    def test_sql_query_alias(self, compiler, write_content):
        write_content("sql", "daily.sql", "SELECT now()")
        node = _node("Q", "n8n-nodes-base.postgres", nodeContent={"sqlQuery": "daily"})
        result = compiler.compile(_doc(node))

        assert _params(result)["sqlQuery"] == "SELECT now()"
        assert "query" not in _params(result)


# ── Soft failures ────────────────────────────────────────────────────────


class TestMissingContent:
    """Missing content is a warning, never an exception."""

    def test_missing_file_leaves_node_unchanged(self, compiler):
        node = _code("Ghost", nodeContent={"script": "ghost"})
        result = compiler.compile(_doc(node))

        assert _params(result) == {"nodeContent": {"script": "ghost"}}
        assert len(result.missing) == 1
        assert result.missing[0].reason == "file not found"
        assert not result.complete
        assert "ghost" in result.warnings[0]

    def test_one_missing_does_not_block_others(self, compiler, write_content):
        write_content("code", "present.js", "ok();")
        result = compiler.compile(
            _doc(
                _code("Missing", nodeContent={"script": "absent"}),
                _code("Present", nodeContent={"script": "present"}),
            )
        )

        assert "jsCode" not in _params(result, 0)
        assert _params(result, 1)["jsCode"] == "ok();"

    def test_partial_reference_keeps_missing_entry(self, compiler, write_content):
        write_content("code", "x.js", "x();")
        node = _code("X", nodeContent={"script": "x", "query": "nope"})
        result = compiler.compile(_doc(node))

        params = _params(result)
        assert params["jsCode"] == "x();"
        assert params[REFERENCE_KEY] == {"query": "nope"}

    @pytest.mark.parametrize(
        "content",
        [
            {"script": "../escape"},
            {"script": ""},
            {"script": 42},
            {"unknownKind": "x"},
        ],
    )
    def test_malformed_reference_is_soft(self, compiler, content):
        result = compiler.compile(_doc(_code("Bad", nodeContent=content)))

        assert _params(result)[REFERENCE_KEY] == content
        assert len(result.missing) == 1

    def test_non_object_reference_is_soft(self, compiler):
        result = compiler.compile(_doc(_code("Bad", nodeContent="greet")))

        assert _params(result)[REFERENCE_KEY] == "greet"
        assert result.missing[0].ref_key == REFERENCE_KEY


# ── Structure ────────────────────────────────────────────────────────────


class TestStructuralErrors:
    @pytest.mark.parametrize(
        "document",
        [
            [],
            "not a workflow",
            {"nodes": "oops"},
            {"nodes": [{"name": "N", "parameters": []}]},
            {"nodes": [42]},
        ],
    )
    def test_malformed_document_raises(self, compiler, document):
        with pytest.raises(WorkflowStructureError):
            compiler.compile(document)

    def test_unparseable_file_raises(self, compiler, workflows_root):
        path = workflows_root / "flows" / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(WorkflowStructureError) as exc_info:
            compiler.compile_file(path)
        assert exc_info.value.context.workflow == str(path)

    def test_missing_file_raises_not_found(self, compiler, workflows_root):
        with pytest.raises(WorkflowNotFoundError):
            compiler.compile_file(workflows_root / "flows" / "nope.json")


# ── Metadata and idempotence ─────────────────────────────────────────────


class TestMetadata:
    def test_defaults_stamped(self, compiler):
        result = compiler.compile({"nodes": []}, source_name="Order Intake.json")
        document = result.document

        assert document["id"] == "order-intake"
        assert document["active"] is False
        assert document["settings"] == {"executionOrder": "v1"}
        assert document["connections"] == {}
        assert document["updatedAt"] == "2026-03-01T09:12:44.120Z"
        assert document["createdAt"] == "2026-03-01T09:12:44.120Z"

    def test_existing_values_kept(self, compiler):
        document = {
            "id": "abc123",
            "active": True,
            "settings": {"timezone": "UTC"},
            "connections": {"A": {"main": []}},
            "createdAt": "2020-01-01T00:00:00.000Z",
            "nodes": [],
        }
        result = compiler.compile(document, source_name="other.json").document

        assert result["id"] == "abc123"
        assert result["active"] is True
        assert result["settings"] == {"timezone": "UTC"}
        assert result["connections"] == {"A": {"main": []}}
        assert result["createdAt"] == "2020-01-01T00:00:00.000Z"

    def test_input_not_mutated(self, compiler, write_content):
        write_content("code", "greet.js", "hi();")
        document = _doc(_code("Greet", nodeContent={"script": "greet"}))
        snapshot = json.dumps(document, sort_keys=True)

        compiler.compile(document)

        assert json.dumps(document, sort_keys=True) == snapshot

    def test_idempotent(self, compiler, write_content):
        write_content("code", "greet.js", "hi();")
        write_content("prompts", "ask.md", "ask")
        document = _doc(
            _code("Greet", nodeContent={"script": "greet"}),
            _node("Ask", "n8n-nodes-base.openAi", nodeContent={"prompt": "ask"}),
            _code("Missing", nodeContent={"script": "absent"}),
        )

        once = compiler.compile(document, source_name="orders.json").document
        twice = compiler.compile(once, source_name="orders.json").document

        assert twice == once

    def test_needs_compilation(self, compiler, write_content):
        write_content("code", "greet.js", "hi();")
        document = _doc(_code("Greet", nodeContent={"script": "greet"}))

        assert WorkflowCompiler.needs_compilation(document)
        assert not compiler.needs_compilation(compiler.compile(document).document)


# ── Batch ────────────────────────────────────────────────────────────────


class TestCompileAll:
    def test_compile_all_saves_and_isolates_failures(
        self, compiler, workflows_root, write_workflow, write_content
    ):
        write_content("code", "greet.js", "hi();")
        write_workflow("good", _doc(_code("Greet", nodeContent={"script": "greet"})))
        (workflows_root / "flows" / "bad.json").write_text("{", encoding="utf-8")
        (workflows_root / "flows" / "package.json").write_text("{}", encoding="utf-8")

        summary = compiler.compile_all(save=True)

        assert [p.name for p in summary.compiled] == ["good.json"]
        assert [p.name for p in summary.failed] == ["bad.json"]
        saved = json.loads((workflows_root / "dist" / "good.json").read_text())
        assert list(saved)[:2] == ["id", "name"]
        assert saved["nodes"][0]["parameters"]["jsCode"] == "hi();"

    def test_saved_node_key_order(self, compiler, workflows_root):
        node = {"parameters": {}, "position": [1, 2], "type": "t", "name": "N", "id": "n1"}
        path = compiler.save_compiled({"nodes": [node], "name": "W", "id": "w"}, "w.json")

        saved = json.loads(path.read_text())
        assert list(saved["nodes"][0]) == ["id", "name", "type", "position", "parameters"]
        assert path.read_text().endswith("\n")

    def test_injection_record(self, compiler, write_content):
        path = write_content("code", "greet.js", "hi();")
        result = compiler.compile(_doc(_code("Greet", nodeContent={"script": "greet"})))

        injection = result.injected[0]
        assert injection.node == "Greet"
        assert injection.kind is ContentKind.SCRIPT
        assert injection.path == path
