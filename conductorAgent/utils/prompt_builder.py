"""Prompt template builder.

System prompts live as Jinja2 templates under ``config/prompt_templates`` and are
rendered in a sandboxed environment.
"""
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from jinja2.sandbox import SandboxedEnvironment

from conductorAgent.config.project_root import resolve_package_path


class PromptBuilder:
    """Renders the system prompts used by the turn loop, planner and plan steps."""

    TEMPLATE_DIR = "config/prompt_templates"
    IDENTITY_TEMPLATE = f"{TEMPLATE_DIR}/identity.jinja2"
    ASSISTANT_TEMPLATE = f"{TEMPLATE_DIR}/assistant.jinja2"
    PLANNER_TEMPLATE = f"{TEMPLATE_DIR}/planner.jinja2"
    STEP_THINK_TEMPLATE = f"{TEMPLATE_DIR}/step_think.jinja2"
    STEP_TOOL_TEMPLATE = f"{TEMPLATE_DIR}/step_tool.jinja2"
    PLAN_ACTIONS_TEMPLATE = f"{TEMPLATE_DIR}/plan_actions.jinja2"

    @staticmethod
    def _load_template(template_path: str) -> str:
        full_path = resolve_package_path(template_path)
        with open(full_path, "r", encoding="utf-8") as f:
            return f.read()

    @staticmethod
    def _render_template(template: str, params: dict) -> str:
        env = SandboxedEnvironment(trim_blocks=True, lstrip_blocks=True)
        return env.from_string(template).render(**params).strip()

    @classmethod
    def _render(cls, template_path: str, **params) -> str:
        return cls._render_template(cls._load_template(template_path), params)

    @classmethod
    def load_identity(cls, persona_path: Optional[str | Path] = None) -> str:
        """Assistant identity: the persona file when it exists and is non-empty, else the default."""
        if persona_path:
            path = Path(persona_path)
            if path.is_file():
                text = path.read_text(encoding="utf-8").strip()
                if text:
                    return text
        return cls._render(cls.IDENTITY_TEMPLATE)

    @classmethod
    def load_assistant_prompt(
        cls,
        *,
        catalog: str = "",
        provider_prompts: Iterable[str] = (),
        tool_search: bool = False,
        persona_path: Optional[str | Path] = None,
    ) -> str:
        """Turn-loop system prompt with the module catalog and provider prompt snippets."""
        return cls._render(
            cls.ASSISTANT_TEMPLATE,
            identity=cls.load_identity(persona_path),
            now=datetime.now().strftime("%Y-%m-%d %H:%M"),
            catalog=catalog,
            provider_prompts=[p.strip() for p in provider_prompts if p and p.strip()],
            tool_search=tool_search,
        )

    @classmethod
    def load_planner_prompt(cls) -> str:
        return cls._render(cls.PLANNER_TEMPLATE)

    @classmethod
    def load_step_think_prompt(cls) -> str:
        return cls._render(cls.STEP_THINK_TEMPLATE)

    @classmethod
    def load_step_tool_prompt(cls, provider_prompts: Iterable[str] = ()) -> str:
        return cls._render(
            cls.STEP_TOOL_TEMPLATE,
            provider_prompts=[p.strip() for p in provider_prompts if p and p.strip()],
        )

    @classmethod
    def load_plan_actions_description(cls, catalog: str) -> str:
        return cls._render(cls.PLAN_ACTIONS_TEMPLATE, catalog=catalog)
