"""Prompt Manager for loading and rendering prompts from YAML templates.

Manages prompt templates stored in YAML files and renders them using Mako.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import structlog
import yaml
from mako.template import Template

logger = structlog.get_logger()


class PromptManager:
    """Manager for loading and rendering prompt templates.

    Loads YAML prompt files and renders them using the Mako template
    engine. Parsed files and compiled templates are cached.
    """

    def __init__(self, prompts_dir: Path | None = None) -> None:
        """Initialize PromptManager.

        Args:
            prompts_dir: Directory containing prompt YAML files.
                        Defaults to the kaap/prompts package directory.
        """
        if prompts_dir is None:
            prompts_dir = Path(__file__).parent

        self.prompts_dir = prompts_dir
        self._cache: dict[str, dict[str, Any]] = {}
        self._template_cache: dict[str, Template] = {}

    def _load_yaml(self, name: str) -> dict[str, Any]:
        """Load YAML prompt file.

        Args:
            name: File name without extension (e.g., 'instructions')

        Returns:
            Parsed YAML content as dictionary

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if name in self._cache:
            return self._cache[name]

        yaml_path = self.prompts_dir / f"{name}.yaml"

        if not yaml_path.exists():
            raise FileNotFoundError(
                f"Prompt file not found: {yaml_path}. "
                f"Available files: {list(self.prompts_dir.glob('*.yaml'))}"
            )

        try:
            with open(yaml_path, encoding="utf-8") as f:
                data: dict[str, Any] = yaml.safe_load(f)
                self._cache[name] = data
                return data
        except yaml.YAMLError as e:
            logger.error(
                "yaml_parse_error",
                prompts=name,
                path=str(yaml_path),
                error=str(e),
            )
            raise

    def _get_template(self, template_str: str, cache_key: str) -> Template:
        if cache_key in self._template_cache:
            return self._template_cache[cache_key]

        template = Template(text=template_str, strict_undefined=True)
        self._template_cache[cache_key] = template
        return template

    def render(self, name: str, prompt_key: Enum, **kwargs: Any) -> str:
        """Render prompt template with given variables.

        Args:
            name: Prompt file name (e.g., 'instructions')
            prompt_key: Key of the prompt in YAML (Enum from prompts.keys)
            **kwargs: Template variables to render

        Returns:
            Rendered prompt string

        Raises:
            FileNotFoundError: If the YAML file doesn't exist
            KeyError: If prompt_key doesn't exist in YAML
            ValueError: If template rendering fails
        """
        key_str = prompt_key.value
        data = self._load_yaml(name)

        if key_str not in data:
            raise KeyError(
                f"Prompt key '{key_str}' not found in {name}.yaml. "
                f"Available keys: {list(data.keys())}"
            )

        template_str = data[key_str]
        if not isinstance(template_str, str):
            raise ValueError(
                f"Prompt '{prompt_key}' in {name}.yaml must be a string, "
                f"got {type(template_str)}"
            )

        template = self._get_template(template_str, f"{name}:{key_str}")

        try:
            rendered = str(template.render(**kwargs))
            return rendered.strip()
        except Exception as e:
            logger.error(
                "template_render_error",
                prompts=name,
                prompt_key=key_str,
                error=str(e),
                variables=list(kwargs.keys()),
            )
            raise ValueError(f"Failed to render template: {e}") from e

    def get_data(self, name: str, key: Enum) -> Any:
        """Get raw data from YAML without rendering.

        Useful for accessing non-template data like per-model tone tables.

        Args:
            name: Prompt file name
            key: Key in the YAML file (Enum from prompts.keys)

        Returns:
            Raw data from YAML

        Raises:
            FileNotFoundError: If the YAML file doesn't exist
            KeyError: If key doesn't exist in YAML
        """
        key_str = key.value
        data = self._load_yaml(name)

        if key_str not in data:
            raise KeyError(
                f"Key '{key_str}' not found in {name}.yaml. "
                f"Available keys: {list(data.keys())}"
            )

        return data[key_str]
