"""Tests for prompt builders."""

import json

from mindforge.services import prompts
from mindforge.services.response_normalizer import JSON_ONLY_INSTRUCTION


def test_json_prompts_carry_json_only_rules():
    built = [
        prompts.decision_tree_prompt({"audience": "teams"}, "Task tracking", "web"),
        prompts.feature_prd_prompt({"title": "Login"}, None),
        prompts.code_prompt({"overview": "x"}, "Login", None),
        prompts.tech_recommendations_prompt("App", "An idea"),
    ]
    for prompt in built:
        assert JSON_ONLY_INSTRUCTION in prompt


def test_feature_prd_prompt_escapes_name():
    prompt = prompts.feature_prd_prompt({"name": 'Say "hi"'}, {"projectName": "Greeter"})
    assert json.dumps('Say "hi"') in prompt
    assert "PROJECT: Greeter" in prompt


def test_code_prompt_formats_stack_dict():
    prompt = prompts.code_prompt("raw prd text", "Login", {"frontend": "React", "backend": "FastAPI"})
    assert "TECH STACK: frontend: React, backend: FastAPI" in prompt
    assert "raw prd text" in prompt


def test_code_prompt_default_stack():
    assert "Next.js, TypeScript, PostgreSQL" in prompts.code_prompt({}, "Login", None)


def test_recommendations_prompt_optional_lines():
    bare = prompts.tech_recommendations_prompt("App", "An idea")
    full = prompts.tech_recommendations_prompt("App", "An idea", ["Chat"], ["ios", "web"])
    assert "Target Platforms" not in bare
    assert '- Target Platforms: ["ios", "web"]' in full


def test_chat_system_prompt_context():
    assert "Current project context" not in prompts.chat_system_prompt()
    assert '"projectName": "X"' in prompts.chat_system_prompt({"projectName": "X"})


def test_project_prd_prompt_sections():
    assert JSON_ONLY_INSTRUCTION in prompts.PROJECT_PRD_SYSTEM_PROMPT
    bare = prompts.project_prd_prompt("Greeter", None, {})
    full = prompts.project_prd_prompt(
        "Greeter",
        "Says hi",
        {"competitors": [{"name": "Hello"}], "targetAudience": "Friendly people"},
    )

    assert "Description: No description provided" in bare
    assert "Competitors" not in bare
    assert '"name": "Hello"' in full
    assert "Target Audience: Friendly people" in full
    assert '"projectName": "Greeter"' in full
