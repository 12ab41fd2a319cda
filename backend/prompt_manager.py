"""Manages system prompts and task prompt templates."""

import logging
from dataclasses import dataclass
from pathlib import Path
from string import Template
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

import config

logger = logging.getLogger(__name__)

# Project kind -> system prompt key; anything unlisted uses DEFAULT_SYSTEM_PROMPT
PROJECT_TYPE_PROMPTS = MappingProxyType({"nextjs": "nextjs_expert"})
DEFAULT_SYSTEM_PROMPT = "code_assistant"


@dataclass(frozen=True)
class SystemPrompt:
    """Immutable system prompt record."""
    name: str
    description: str
    content: str


@dataclass(frozen=True)
class TaskTemplate:
    """Immutable task prompt template with its required variables."""
    name: str
    template: str
    variables_required: Tuple[str, ...] = ()


class PromptManager:
    """Loads prompt_config.yaml once and renders prompts from it."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize PromptManager.

        Args:
            config_path: Path to prompt_config.yaml (default: templates/prompt_config.yaml)
        """
        self.config_path = Path(config_path) if config_path else config.PROMPT_CONFIG_PATH
        raw = self._load_config()
        self.version = raw.get('version')
        self.system_prompts: Mapping[str, SystemPrompt] = MappingProxyType({
            name: SystemPrompt(
                name=name,
                description=entry.get('description', ''),
                content=entry['content'].strip()
            )
            for name, entry in raw.get('system_prompts', {}).items()
        })
        self.task_templates: Mapping[str, TaskTemplate] = MappingProxyType({
            name: TaskTemplate(
                name=name,
                template=entry['template'],
                variables_required=tuple(entry.get('variables_required', []))
            )
            for name, entry in raw.get('task_templates', {}).items()
        })

        logger.info(f"PromptManager initialized with config: {self.config_path}")

    def _load_config(self) -> Dict[str, Any]:
        """Load prompt configuration from YAML file."""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f)
            logger.info(f"Loaded prompt config version {loaded.get('version')}")
            return loaded
        except FileNotFoundError:
            logger.error(f"Config file not found: {self.config_path}")
            raise
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML config: {e}")
            raise

    def system_prompt_for(self, project_type: str) -> SystemPrompt:
        """
        Select the system prompt for a project kind.

        Args:
            project_type: Project kind (nextjs, react, plain, ...)

        Returns:
            SystemPrompt record
        """
        key = PROJECT_TYPE_PROMPTS.get((project_type or '').lower(), DEFAULT_SYSTEM_PROMPT)
        return self.system_prompts[key]

    def render_task_prompt(self, name: str, variables: Dict[str, Any]) -> str:
        """
        Render a task prompt with variable substitution.

        Raises:
            ValueError: If the template name is unknown
            KeyError: If required variables are missing
        """
        if name not in self.task_templates:
            available = list(self.task_templates.keys())
            raise ValueError(f"Unknown task template '{name}'. Available: {available}")

        task = self.task_templates[name]
        missing_vars = [var for var in task.variables_required if var not in variables]
        if missing_vars:
            raise KeyError(f"Missing required variables for '{name}': {missing_vars}")

        rendered = Template(task.template).safe_substitute(
            {key: '' if value is None else value for key, value in variables.items()}
        )
        logger.debug(f"Rendered task prompt '{name}' with {len(variables)} variables")
        return rendered

    def get_available_prompts(self) -> List[str]:
        """List system prompt names."""
        return list(self.system_prompts.keys())


# Global instance (lazy-loaded)
_prompt_manager: Optional[PromptManager] = None


def get_prompt_manager() -> PromptManager:
    """Get or create the global PromptManager."""
    global _prompt_manager
    if _prompt_manager is None:
        _prompt_manager = PromptManager()
    return _prompt_manager
