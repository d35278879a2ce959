"""
Prompt Builder / Response Parser

Builds the prompts sent to the model for feature generation and for
automation planning, and parses the model's JSON answers back into typed
structures. Models routinely wrap JSON in Markdown code fences, so both
parsers strip fences before decoding.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..models import AutomationStep, FeatureComplexity, GeneratedFeature

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MIN_FEATURES = 5
MAX_FEATURES = 12


FEATURE_GENERATION_SYSTEM_PROMPT = f"""You are an expert software architect and project planner. Your task is to analyze a project description and generate a list of well-defined features that can be implemented incrementally.

For each feature you generate, provide:
1. A clear, concise title (max 60 characters)
2. A detailed description of what the feature does
3. Key implementation points (3-5 bullet points)
4. Acceptance criteria (how to verify the feature works)
5. Suggested tests to write
6. Estimated complexity (low, medium, or high)
7. Dependencies on other features (if any)

IMPORTANT RULES:
- Generate {MIN_FEATURES}-{MAX_FEATURES} features depending on project complexity
- Start with foundational features (setup, core data models)
- Progress to user-facing features
- End with polish features (error handling, UX improvements)
- Each feature should be independently implementable within 1-4 hours
- Be specific and actionable, not vague
- Use the exact JSON format specified

You MUST respond with valid JSON only. No markdown, no explanations outside the JSON."""


FEATURE_GENERATION_PROMPT_TEMPLATE = """Analyze the following project and generate a comprehensive list of features:

PROJECT NAME: {project_name}

PROJECT DESCRIPTION:
{description}

Generate a JSON response with the following structure:
{{
  "features": [
    {{
      "title": "Feature Title",
      "description": "Detailed description of what this feature does",
      "keyPoints": [
        "Implementation point 1",
        "Implementation point 2",
        "Implementation point 3"
      ],
      "acceptanceCriteria": [
        "User can do X",
        "System displays Y",
        "Data is persisted correctly"
      ],
      "suggestedTests": [
        "Test that X works correctly",
        "Test edge case Y"
      ],
      "estimatedComplexity": "low|medium|high",
      "dependencies": ["Other Feature Title if dependent"]
    }}
  ]
}}

Generate the features now as valid JSON:"""


AUTOMATION_SYSTEM_PROMPT = """You are an AI Automation Agent specialized in executing software development tasks.
Your goal is to break down a high-level feature into a sequence of specific terminal commands (bash/powershell) to implement it.

You have access to the following project context:
- Project Path
- Feature Title and Description
- Key Implementation Points

Rules for command generation:
1. ONLY generate commands that are safe and relevant to the feature.
2. Use standard tools: npm, pip, git, mkdir, touch, etc.
3. Assume the project has been initialized.
4. Each step runs exactly ONE single-line shell command.
5. Provide a short description (step name) for each command.
6. Order the commands logically (install dependencies -> create files -> run verification).
7. If a command requires writing complex file content, use a dedicated step description.

Respond with a JSON array of steps:
[
  {
    "step": "Install dependencies",
    "command": "npm install lucide-react",
    "description": "Installing icons for the UI"
  },
  {
    "step": "Create component folder",
    "command": "mkdir -p src/components/ui",
    "description": "Creating the directory for UI components"
  }
]

DO NOT include markdown or explanations outside the JSON."""


AUTOMATION_PLAN_PROMPT_TEMPLATE = """Generate a list of terminal commands to implement this feature in a project located at: {project_path}

FEATURE: {title}
DESCRIPTION: {description}
KEY POINTS:
{key_points}

Generate the implementation steps now:"""


class ParseError(ValueError):
    """Raised when model output does not have the expected JSON structure."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def strip_code_fences(raw: str) -> str:
    """
    Remove a Markdown code fence wrapped around a model answer.

    Handles a leading ```json or ``` marker and a trailing ``` marker.
    """
    cleaned = raw.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-len("```")]
    return cleaned.strip()


def build_feature_generation_prompt(project_name: str, description: str) -> str:
    """Build the user prompt asking for a {"features": [...]} object."""
    return FEATURE_GENERATION_PROMPT_TEMPLATE.format(
        project_name=project_name,
        description=description,
    )


def build_automation_plan_prompt(
    project_path: str,
    title: str,
    description: str,
    key_points: list[str],
) -> str:
    """Build the user prompt asking for an ordered list of shell steps."""
    return AUTOMATION_PLAN_PROMPT_TEMPLATE.format(
        project_path=project_path,
        title=title,
        description=description,
        key_points="\n".join(f"- {point}" for point in key_points),
    )


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _complexity(value: Any) -> FeatureComplexity:
    if isinstance(value, str):
        try:
            return FeatureComplexity(value)
        except ValueError:
            pass
    return FeatureComplexity.MEDIUM


def parse_feature_generation_response(raw: str) -> list[GeneratedFeature]:
    """
    Parse a feature generation answer.

    Args:
        raw: Model output, optionally fenced

    Returns:
        Normalized feature proposals

    Raises:
        ParseError: If the JSON is invalid, "features" is missing or not a
            list, or an element lacks a non-empty string title
    """
    try:
        parsed = json.loads(strip_code_fences(raw))
        if not isinstance(parsed, dict) or not isinstance(parsed.get("features"), list):
            raise ParseError("Response does not contain a features array", raw)

        features = []
        for index, item in enumerate(parsed["features"], start=1):
            if not isinstance(item, dict):
                raise ParseError(f"Feature {index} is not an object", raw)
            title = item.get("title")
            if not isinstance(title, str) or not title.strip():
                raise ParseError(f"Feature {index} is missing a valid title", raw)

            description = item.get("description")
            features.append(GeneratedFeature(
                title=title[:MAX_TITLE_LENGTH],
                description=description if isinstance(description, str) else "",
                key_points=_string_list(item.get("keyPoints")),
                acceptance_criteria=_string_list(item.get("acceptanceCriteria")),
                suggested_tests=_string_list(item.get("suggestedTests")),
                estimated_complexity=_complexity(item.get("estimatedComplexity")),
                dependencies=_string_list(item.get("dependencies")),
            ))
        return features
    except json.JSONDecodeError as e:
        logger.error("Failed to parse feature response: %s", raw[:500])
        raise ParseError(f"Failed to parse feature response: {e}", raw) from e
    except ParseError:
        logger.error("Unexpected feature response structure: %s", raw[:500])
        raise


def parse_automation_plan_response(raw: str) -> list[AutomationStep]:
    """
    Parse an automation plan answer.

    Never raises: anything that is not a JSON array yields an empty plan,
    and entries without a command are dropped.
    """
    try:
        parsed = json.loads(strip_code_fences(raw))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse automation steps: %s", e)
        return []

    if not isinstance(parsed, list):
        return []

    steps = []
    for item in parsed:
        if not isinstance(item, dict):
            continue
        step = AutomationStep.from_dict(item)
        if not step.command.strip():
            continue
        if not step.step.strip():
            step.step = step.command
        steps.append(step)
    return steps
