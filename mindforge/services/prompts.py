"""Prompt templates for the generation tasks."""

import json
from typing import Any, Dict, List, Optional

from mindforge.services.response_normalizer import JSON_ONLY_INSTRUCTION

MINDMAP_REQUIRED_KEYS = ("projectName", "features")
FEATURE_PRD_REQUIRED_KEYS = ("overview", "userStories")
PROJECT_PRD_REQUIRED_KEYS = ("projectName", "executiveSummary", "features")
CODE_REQUIRED_KEYS = ("files",)
RECOMMENDATIONS_REQUIRED_KEYS = ("frontend", "backend", "database")

MINDMAP_SYSTEM_PROMPT = """You are an expert product strategist and technical architect. Generate a concise, structured mindmap for a SaaS application idea.

Return ONLY valid JSON with this exact structure (no markdown, no explanation):
{
  "projectName": "string (2-4 words)",
  "projectDescription": "string (1 sentence, max 150 chars)",
  "targetAudience": "string (1 sentence, max 100 chars)",
  "competitors": [
    {"name": "string", "strength": "string (1 sentence)", "ourAdvantage": "string (1 sentence)"}
  ],
  "techStack": {
    "frontend": "string", "backend": "string", "database": "string",
    "auth": "string", "payments": "string", "hosting": "string"
  },
  "features": [
    {"id": "string", "title": "string (2-5 words)", "description": "string (1 sentence)", "priority": "high|medium|low"}
  ],
  "monetization": {
    "model": "subscription|one-time|freemium|usage-based",
    "pricing": "string", "freeTier": "string (optional)", "paidTier": "string (optional)"
  },
  "userPersona": {
    "name": "string", "description": "string (1 sentence)",
    "painPoint": "string (1 sentence)", "goal": "string (1 sentence)"
  }
}

Rules:
- Max 3 competitors
- Exactly 6 tech stack items
- 5-8 core MVP features only
- Keep all text concise
- Prioritize high-value features
- Be specific and actionable"""


def mindmap_prompt(idea: str) -> str:
    return f'Analyze this SaaS idea and generate a comprehensive mindmap: "{idea}"'


def decision_tree_prompt(decisions: Dict[str, Any], app_purpose: str, app_type: str) -> str:
    decisions_text = "\n".join(f"- {key}: {value}" for key, value in decisions.items())
    return f"""You are an expert app architect. Based on the user's decisions, create a comprehensive mindmap structure for their {app_purpose} {app_type} app.

User Decisions:
{decisions_text}

App Purpose: {app_purpose}
App Type: {app_type}

Create a mindmap JSON object with: projectName, projectDescription, targetAudience,
competitors (3-5 similar apps), techStack (based on the decisions), features
(array of {{id, title, description, priority}} based on their choices),
monetization and userPersona.

{JSON_ONLY_INSTRUCTION}"""


def feature_prd_prompt(feature: Dict[str, Any], project_context: Optional[Dict[str, Any]]) -> str:
    name = feature.get("title") or feature.get("name") or "Untitled feature"
    description = feature.get("description") or "No description provided"
    project_line = ""
    if project_context:
        project_line = f"PROJECT: {project_context.get('projectName', 'Unknown Project')}"

    return f"""Generate a detailed PRD for this feature as valid JSON.

FEATURE: {name}
DESCRIPTION: {description}
{project_line}

{JSON_ONLY_INSTRUCTION}

Return this exact JSON structure:
{{
  "featureName": {json.dumps(name)},
  "overview": "2-3 sentence overview",
  "userStories": [
    {{
      "persona": "User type",
      "story": "As a [persona], I want to [action] so that [benefit]",
      "acceptanceCriteria": ["criterion 1", "criterion 2", "criterion 3"]
    }}
  ],
  "technicalRequirements": {{
    "frontend": {{"components": [], "libraries": [], "stateManagement": "string"}},
    "backend": {{
      "apiEndpoints": [{{"method": "POST", "path": "/api/example", "description": "What it does", "authRequired": true}}],
      "services": []
    }},
    "database": {{"tables": [{{"tableName": "table_name", "columns": [{{"name": "id", "type": "UUID", "constraints": "PRIMARY KEY"}}]}}]}},
    "security": [],
    "edgeCases": []
  }},
  "implementationSteps": [],
  "estimations": {{"complexity": "simple|moderate|complex", "engineeringHours": 0}}
}}

Include 3 user stories, 2-3 API endpoints, relevant database tables, and 5-8 implementation steps."""


PROJECT_PRD_SYSTEM_PROMPT = f"""You are a senior product manager and technical architect. Write a production-ready
Product Requirement Document that can be handed directly to a development team.

Cover, for the project as a whole and for every feature:
- executive summary, problem, value proposition, target market, success metrics
- user stories with testable acceptance criteria
- technical implementation: frontend components and state, backend business logic,
  REST endpoints with request and response bodies, database tables with typed columns,
  constraints, relationships and indexes
- security, performance and edge cases
- estimations (complexity, engineering hours, breakdown)
- user personas, competitive analysis, phased roadmap, risks and open questions

{JSON_ONLY_INSTRUCTION}
- Do NOT include any references to AI models or how the document was generated"""


def project_prd_prompt(project_name: str, description: Optional[str], mindmap: Dict[str, Any]) -> str:
    sections = [f"Project Name: {project_name}", f"Description: {description or 'No description provided'}"]
    for label, key in (
        ("Features", "features"),
        ("Competitors", "competitors"),
        ("Tech Stack", "techStack"),
        ("User Persona", "userPersona"),
        ("Monetization", "monetization"),
    ):
        if mindmap.get(key):
            sections.append(f"{label}: {json.dumps(mindmap[key], indent=2)}")
    if mindmap.get("targetAudience"):
        sections.append(f"Target Audience: {mindmap['targetAudience']}")
    project = "\n".join(sections)

    return f"""Generate a comprehensive PRD for this project:

{project}

Return a JSON object with this structure:
{{
  "projectName": {json.dumps(project_name)},
  "executiveSummary": {{
    "overview": "2-3 sentences", "problemStatement": "string", "valueProposition": "string",
    "targetMarket": "string", "successMetrics": ["metric"]
  }},
  "features": [
    {{
      "featureName": "Feature name from the mindmap",
      "priority": "P0|P1|P2",
      "overview": "2-3 sentences",
      "userStories": [{{"persona": "string", "story": "As a ..., I want ... so that ...", "acceptanceCriteria": []}}],
      "technicalImplementation": {{
        "frontend": {{"approach": "string", "components": [], "libraries": [], "stateManagement": "string"}},
        "backend": {{"businessLogic": "string", "apiEndpoints": [{{"method": "POST", "path": "/api/example", "description": "string", "authRequired": true}}], "services": []}},
        "database": {{"tables": [{{"tableName": "string", "columns": [{{"name": "id", "type": "UUID", "constraints": "PRIMARY KEY"}}], "relationships": [], "indexes": []}}]}},
        "security": [], "performance": [], "edgeCases": []
      }},
      "estimations": {{"complexity": "simple|moderate|complex", "engineeringHours": 0, "breakdown": {{"frontend": 0, "backend": 0, "database": 0}}}}
    }}
  ],
  "userPersonas": [{{"name": "string", "goals": [], "painPoints": []}}],
  "competitiveAnalysis": [{{"competitor": "string", "strengths": [], "weaknesses": [], "differentiation": "string"}}],
  "roadmap": [{{"phase": "Phase 1", "duration": "string", "tasks": []}}],
  "risks": [{{"risk": "string", "mitigation": "string"}}],
  "openQuestions": []
}}

Include one entry in "features" for every feature listed above."""


def code_prompt(prd: Any, feature_name: str, tech_stack: Any) -> str:
    if isinstance(tech_stack, dict):
        tech_stack_text = ", ".join(f"{k}: {v}" for k, v in tech_stack.items())
    else:
        tech_stack_text = str(tech_stack or "Next.js, TypeScript, PostgreSQL")
    prd_text = prd if isinstance(prd, str) else json.dumps(prd, indent=2)

    return f"""You are a senior full-stack developer generating production-ready code based on a Product Requirements Document.

CRITICAL REQUIREMENTS:
- Generate production-ready, well-commented code
- Include proper error handling
- Use TypeScript for type safety
- Code should be immediately usable

TECH STACK: {tech_stack_text}

FEATURE: {feature_name}

PRD CONTENT:
{prd_text}

Generate a complete implementation as a JSON object with this structure:
{{
  "files": [{{"path": "src/...", "content": "complete file content", "type": "component|api|schema|documentation"}}],
  "structure": {{"frontend": {{}}, "backend": {{}}, "database": {{}}}},
  "dependencies": {{"npm": [], "devDependencies": []}},
  "setupInstructions": [],
  "environmentVariables": []
}}

{JSON_ONLY_INSTRUCTION}"""


def tech_recommendations_prompt(
    project_name: str,
    idea: str,
    features: Optional[List[Any]] = None,
    target_platforms: Optional[List[str]] = None,
) -> str:
    lines = [f"- Name: {project_name}", f"- Description: {idea}"]
    if features:
        lines.append(f"- Features: {json.dumps(features)}")
    if target_platforms:
        lines.append(f"- Target Platforms: {json.dumps(target_platforms)}")
    project = "\n".join(lines)

    return f"""You are a senior software architect. Analyze this project and recommend the best technology stack.

PROJECT:
{project}

Provide tech stack recommendations as a JSON object with keys:
frontend {{framework, reasoning, alternatives, libraries, styling, stateManagement}},
backend {{language, framework, reasoning, alternatives}},
database {{primary, reasoning, alternatives, caching}},
hosting {{platform, reasoning, alternatives}},
authentication {{solution, reasoning}}, payments {{solution, reasoning}},
additionalTools [{{name, category, purpose}}],
developmentWorkflow {{versionControl, cicd, testing, monitoring}},
estimatedComplexity ("low"|"medium"|"high"), estimatedTimeline, teamSize.

{JSON_ONLY_INSTRUCTION}"""


def chat_system_prompt(context: Optional[Dict[str, Any]] = None) -> str:
    base = (
        "You are MindForge's product assistant. Help the user refine their app idea, "
        "features, PRDs and implementation plan. Be concise and practical."
    )
    if context:
        return f"{base}\n\nCurrent project context:\n{json.dumps(context, indent=2)}"
    return base
