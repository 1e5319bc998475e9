"""Analysis prompt templates.

Every analysis is driven by a template whose ``analysis_prompt`` contains a
``${chatContent}`` marker that the conversation text replaces. Built-in
templates are always available; additional templates are read from YAML
files in ``paths.templates_dir`` and, per caller, from
``<data_dir>/templates/<user_id>/``.

Template file format (YAML):
    ```yaml
    id: sales-call
    name: Sales Call Review
    description: Objection handling and closing technique
    category: business
    system_prompt: You are an experienced sales coach.
    analysis_prompt: |
      Analyze the following sales call and respond with JSON ...
      ${chatContent}
    ```

Example:
    >>> store = TemplateStore()
    >>> template = store.get("communication-analysis")
    >>> "${chatContent}" in template.analysis_prompt
    True
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from chatlens.ai.client import InputError
from chatlens.config import AppConfig
from chatlens.core.models import CHAT_CONTENT_MARKER

logger = logging.getLogger(__name__)

# One path segment; no separators, no leading dot
_USER_ID = re.compile(r"[A-Za-z0-9_@-][A-Za-z0-9_.@-]{0,127}")


class TemplateNotFoundError(InputError):
    """No template with the requested id is visible to the caller."""

    def __init__(self, template_id: str, available: list[str]) -> None:
        super().__init__(
            f"No valid analysis template found. Available templates: {', '.join(available)}"
        )
        self.template_id = template_id
        self.available = available


class AnalysisTemplate(BaseModel):
    """A prompt template for one kind of analysis.

    Attributes:
        id: Unique identifier (e.g. "communication-analysis").
        name: Display name.
        description: What the analysis focuses on.
        category: Grouping for display.
        system_prompt: Role description for the model.
        analysis_prompt: Prompt body containing the ${chatContent} marker.
        is_built_in: Whether the template ships with chatlens.
    """

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    category: str = "general"
    system_prompt: str = ""
    analysis_prompt: str
    is_built_in: bool = False

    @field_validator("analysis_prompt")
    @classmethod
    def require_marker(cls, v: str) -> str:
        if CHAT_CONTENT_MARKER not in v:
            raise ValueError(f"analysis_prompt must contain {CHAT_CONTENT_MARKER}")
        return v


# =============================================================================
# Built-in Templates
# =============================================================================


_RESPONSE_FORMAT = """IMPORTANT INSTRUCTIONS:
1. Detect the language of the conversation and respond in that same language.
2. Provide objective, evidence-based observations. Cite the conversation.
3. Each insight MUST have a 'type', 'title', 'content' and 'metadata' object.
   Allowed types: text, list, score, timeline, metric, chart, table, category.
4. Scores use a 1-100 scale. Priority is 1-5, confidence is 0.0-1.0.

IMPORTANT JSON FORMATTING RULES:
- Use commas (,) to separate ALL array elements, never periods (.)
- Ensure all strings are properly quoted with double quotes
- Do not use trailing commas before closing brackets or braces

You MUST respond with a valid JSON object with this structure:
{
  "detectedLanguage": "Name of the detected language",
  "overallSummary": "A comprehensive summary of the conversation dynamics",
  "insights": [
    {
      "type": "score",
      "title": "...",
      "content": 85,
      "metadata": {"category": "...", "priority": 5, "confidence": 0.8}
    }
  ],
  "metrics": {"...": 0.85},
  "templateData": {}
}
"""

_CONVERSATION_BLOCK = f"""
Chat Conversation:
---
{CHAT_CONTENT_MARKER}
---

Respond ONLY with the JSON object. Do not include any other text, markdown formatting, or explanation."""


def _builtin(
    template_id: str, name: str, description: str, category: str, system_prompt: str, focus: str
) -> AnalysisTemplate:
    return AnalysisTemplate(
        id=template_id,
        name=name,
        description=description,
        category=category,
        system_prompt=system_prompt,
        analysis_prompt=(
            f"{system_prompt} Analyze the provided chat conversation and extract detailed insights.\n\n"
            f"SPECIALIZED FOCUS:\n{focus}\n\n{_RESPONSE_FORMAT}{_CONVERSATION_BLOCK}"
        ),
        is_built_in=True,
    )


BUILT_IN_TEMPLATES: list[AnalysisTemplate] = [
    _builtin(
        "communication-analysis",
        "Communication Analysis",
        "General communication patterns, personality traits, and emotional dynamics",
        "general",
        "You are an expert communication analyst specializing in interpersonal communication patterns.",
        "- Communication effectiveness and recurring patterns\n"
        "- Personality traits, emotional arc, and main topics",
    ),
    _builtin(
        "relationship-analysis",
        "Relationship Dynamics",
        "Interpersonal dynamics, attachment styles, and relationship health",
        "relationship",
        "You are a relationship psychologist specializing in interpersonal dynamics.",
        "- Emotional connection, trust, and conflict resolution\n"
        "- Relationship health indicators and areas for growth",
    ),
    _builtin(
        "business-meeting",
        "Business Meeting Analysis",
        "Meeting effectiveness, decision-making, and action items",
        "business",
        "You are a business communication consultant specializing in meeting effectiveness.",
        "- Decisions made, action items, and owners\n"
        "- Participation balance and meeting effectiveness",
    ),
    _builtin(
        "coaching-session",
        "Coaching Session Analysis",
        "Coaching techniques, client progress, and session outcomes",
        "coaching",
        "You are an executive coach evaluating coaching conversations.",
        "- Questioning techniques, clarity of goals, and client progress\n"
        "- Agreed actions and their likely effectiveness",
    ),
]


# =============================================================================
# Store
# =============================================================================


class TemplateStore:
    """Resolves analysis templates by id.

    Lookup order: per-user templates, then templates from ``templates_dir``,
    then built-ins. A later source never overrides an id from an earlier one.

    Attributes:
        templates_dir: Directory of shared YAML templates, if any.
        user_templates_root: Directory holding one subdirectory per user.
    """

    def __init__(
        self,
        templates_dir: Path | None = None,
        user_templates_root: Path | None = None,
    ) -> None:
        self.templates_dir = templates_dir
        self.user_templates_root = user_templates_root
        self._builtins = {t.id: t for t in BUILT_IN_TEMPLATES}

    @classmethod
    def from_config(cls, config: AppConfig) -> "TemplateStore":
        return cls(
            templates_dir=config.paths.templates_dir,
            user_templates_root=config.paths.data_dir / "templates",
        )

    def _load_dir(self, directory: Path | None) -> dict[str, AnalysisTemplate]:
        """Load every template YAML file in ``directory``, skipping bad files."""
        templates: dict[str, AnalysisTemplate] = {}
        if directory is None or not directory.is_dir():
            return templates

        for path in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
            try:
                loaded: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Skipping template file {path.name}: {e}")
                continue

            entries = loaded if isinstance(loaded, list) else [loaded]
            for entry in entries:
                if not isinstance(entry, dict):
                    logger.warning(f"Skipping template file {path.name}: not a mapping")
                    continue
                try:
                    template = AnalysisTemplate(**{**entry, "is_built_in": False})
                except ValidationError as e:
                    logger.warning(f"Skipping invalid template in {path.name}: {e.error_count()} errors")
                    continue
                templates.setdefault(template.id, template)

        return templates

    def _visible(self, user_id: str | None = None) -> dict[str, AnalysisTemplate]:
        visible: dict[str, AnalysisTemplate] = {}
        if user_id and self.user_templates_root is not None:
            if _USER_ID.fullmatch(user_id):
                visible.update(self._load_dir(self.user_templates_root / user_id))
            else:
                logger.warning("Ignoring user templates: user id is not a plain directory name")
        for template_id, template in self._load_dir(self.templates_dir).items():
            visible.setdefault(template_id, template)
        for template_id, template in self._builtins.items():
            visible.setdefault(template_id, template)
        return visible

    def get(self, template_id: str, user_id: str | None = None) -> AnalysisTemplate:
        """Return the template with ``template_id``.

        Raises:
            TemplateNotFoundError: If no visible template has that id.
        """
        visible = self._visible(user_id)
        template = visible.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id, sorted(visible))
        return template

    def list_templates(self, user_id: str | None = None) -> list[AnalysisTemplate]:
        """All templates visible to ``user_id``, built-ins first, then by id."""
        return sorted(self._visible(user_id).values(), key=lambda t: (not t.is_built_in, t.id))
