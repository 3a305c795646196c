"""
Dictionary-backed template renderer and identity provider.

Templates are ``str.format`` strings (or callables returning a string)
keyed by name. Layouts receive the rendered template as ``{content}``.
Template identity is the MD5 of the template source, so editing a template
changes every fragment name rendered from it.
"""

import hashlib
import inspect
from typing import Any, Callable, Dict, Mapping, Union

Template = Union[str, Callable[..., Any]]


class TemplateNotFound(LookupError):
    pass


class DictTemplateRenderer:
    """Renders named templates from an in-memory mapping."""

    def __init__(self, templates: Mapping[str, Template]):
        self.templates: Dict[str, Template] = dict(templates)
        self._digests: Dict[str, str] = {}

    def _lookup(self, name: str) -> Template:
        try:
            return self.templates[name]
        except KeyError:
            raise TemplateNotFound(f"Missing template {name}") from None

    def digest_for(self, name: str) -> str:
        """``<name>:<md5 of source>``, cached until the template is replaced."""
        if name not in self._digests:
            template = self._lookup(name)
            source = template if isinstance(template, str) else inspect.getsource(template)
            self._digests[name] = f"{name}:{hashlib.md5(source.encode()).hexdigest()}"
        return self._digests[name]

    def register(self, name: str, template: Template):
        self.templates[name] = template
        self._digests.pop(name, None)

    async def render_template(self, controller: Any, name: str, locals: Dict[str, Any]) -> str:
        return await self._render(self._lookup(name), controller, locals)

    async def render_layout(self, controller: Any, name: str, content: str, locals: Dict[str, Any]) -> str:
        return await self._render(self._lookup(name), controller, {**locals, "content": content})

    @staticmethod
    async def _render(template: Template, controller: Any, locals: Dict[str, Any]) -> str:
        if isinstance(template, str):
            return template.format(c=controller, **locals)
        result = template(controller, **locals)
        if inspect.isawaitable(result):
            result = await result
        return result
