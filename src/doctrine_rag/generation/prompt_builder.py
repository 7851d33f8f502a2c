"""doctrine_rag.generation.prompt_builder

Prompt template definitions and rendering utilities.

Templates are named pairs of a system (role) message and a user message,
rendered with Jinja2. They are registered from dictionaries, JSON files, or
JSON resources bundled inside a package.

Classes
-------
PromptTemplate
    A single named chat prompt template.
RenderedPrompt
    System and user message produced by rendering a template.
PromptBuilder
    Registry and factory for prompt templates.
"""
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Union
from pathlib import Path
import json
import warnings
from importlib import resources

from jinja2 import Template


@dataclass(frozen=True)
class RenderedPrompt:
    """Rendered chat prompt."""
    system: str
    user: str


class PromptTemplate:
    """Represents a single named chat prompt template.

    Parameters
    ----------
    name : str
        Name of the template.
    system : str or None, optional
        System (role) message template.
    user : str, optional
        User message template.
    """

    def __init__(self,
                 name: str,
                 system: Optional[str] = None,
                 user: Optional[str] = ''
        ):
        self.name = name
        self.system = system or ""
        self.user = user or ""

    def render_system(self, **kwargs) -> str:
        return Template(self.system).render(**kwargs)

    def render_user(self, **kwargs) -> str:
        return Template(self.user).render(**kwargs)

    def render(self, **kwargs) -> RenderedPrompt:
        """Render both messages with the same variables."""
        return RenderedPrompt(system=self.render_system(**kwargs), user=self.render_user(**kwargs))


class PromptBuilder:
    """Registry and factory for prompt templates."""

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    def register_from_dict(self, data: Dict[str, Any]) -> str:
        """Register a new template from a dictionary.

        Parameters
        ----------
        data : dict[str, Any]
            Mapping with ``"name"`` and optional ``"system"`` and ``"user"``.

        Returns
        -------
        str
            The registered template name.

        Raises
        ------
        KeyError
            If ``"name"`` is missing from ``data``.
        TypeError
            If fields are of invalid types.
        ValueError
            If ``"name"`` is empty.
        """
        if "name" not in data:
            raise KeyError("Template definition missing required key: 'name'")
        name = data["name"]
        if not isinstance(name, str):
            raise TypeError(f"Template 'name' must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Template 'name' must be a non-empty string")

        system = data.get("system")
        user = data.get("user") or ""
        for key, value in (("system", system), ("user", user)):
            if value is not None and not isinstance(value, str):
                raise TypeError(f"Template '{key}' must be a str, got {type(value)!r}")

        if name in self.templates:
            warnings.warn(f"Overwriting existing prompt template: {name}")
        self.templates[name] = PromptTemplate(name=name, system=system, user=user)
        return name

    def _register_loaded(self, data: Any, origin: str) -> List[str]:
        if isinstance(data, dict):
            return [self.register_from_dict(data)]
        if isinstance(data, list):
            registered: List[str] = []
            for item in data:
                if not isinstance(item, dict):
                    raise TypeError(f"Template list items must be dicts, got {type(item)!r}")
                registered.append(self.register_from_dict(item))
            return registered
        raise TypeError(f"{origin} must contain an object or list of objects, got {type(data)!r}")

    def register_from_file(self, path: Union[Path, str], base_dir: Optional[Path] = None) -> List[str]:
        """Load and register templates from a JSON file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If the file extension is not ``.json``.
        """
        p = Path(path)
        if not p.is_absolute() and base_dir is not None:
            p = base_dir / p
        p = p.resolve()
        if not p.exists():
            raise FileNotFoundError(f"Prompt file not found: {p}")
        if p.suffix.lower() != ".json":
            raise ValueError(f"Unsupported file type: {p.suffix}")

        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return self._register_loaded(data, f"Prompt file {p}")

    def register_from_package(self, package: str, resource_path: str) -> List[str]:
        """Load and register templates from a JSON resource bundled in ``package``."""
        if not resource_path.lower().endswith(".json"):
            raise ValueError(f"Unsupported resource type: {resource_path}")

        try:
            res = resources.files(package).joinpath(resource_path)
        except ModuleNotFoundError as e:
            raise FileNotFoundError(f"Could not locate resource '{resource_path}' in package '{package}'") from e

        if not res.is_file():
            raise FileNotFoundError(f"Prompt resource not found: pkg:{package}:{resource_path}")

        data = json.loads(res.read_text(encoding="utf-8"))
        return self._register_loaded(data, f"Prompt resource pkg:{package}:{resource_path}")

    def register_from_source(self, source: str, base_dir: Optional[Path] = None) -> List[str]:
        """Register templates from a source spec.

        Supported formats
        -----------------
        - ``pkg:<package>:<resource_path>``
        - ``file:<path>``
        - ``<path>`` (plain filesystem path)
        """
        if not isinstance(source, str):
            raise TypeError(f"source must be a str, got {type(source)!r}")

        if source.startswith("pkg:"):
            rest = source[len("pkg:"):]
            if ":" not in rest:
                raise ValueError("pkg: sources must be of the form 'pkg:<package>:<resource_path>'")
            package, resource_path = rest.split(":", 1)
            return self.register_from_package(package.strip(), resource_path.strip())

        if source.startswith("file:"):
            return self.register_from_file(Path(source[len("file:"):].strip()), base_dir=base_dir)

        return self.register_from_file(Path(source), base_dir=base_dir)

    def list_prompts(self) -> List[str]:
        """Return a sorted list of registered prompt template names."""
        return sorted(self.templates.keys())

    def get_template(self, name: str) -> PromptTemplate:
        """Get a registered PromptTemplate by name.

        Raises
        ------
        KeyError
            If no template is registered under ``name``.
        """
        if name not in self.templates:
            available = ", ".join(self.list_prompts())
            raise KeyError(f"No template registered under name: {name}. Available: [{available}]")
        return self.templates[name]

    def build(self, name: str, **kwargs) -> RenderedPrompt:
        """Render the template registered under ``name`` with ``kwargs``."""
        return self.get_template(name).render(**kwargs)
