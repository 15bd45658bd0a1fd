"""Jinja2 rendering of action text parameters.

Comment bodies, notification texts and webhook payload strings may reference
context fields, e.g. ``"Moved {{ task.title }} for {{ user.name }}"``.
A placeholder that does not resolve, at any depth, is written back verbatim
as ``{{ dotted.path }}`` so a typo or an absent entity shows up in the posted
text instead of failing the action. Templates come from rule authors and are
rendered in a sandbox.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from boardflow.core.domain.errors import InvalidActionParameters
from boardflow.core.domain.trigger_context import TriggerContext


class _PathDict(dict):
    """Template mapping that remembers its dotted path from the root."""

    __slots__ = ("_template_path",)

    def __init__(self, data: Mapping[str, Any], path: str) -> None:
        super().__init__((k, _with_paths(v, f"{path}.{k}")) for k, v in data.items())
        self._template_path = path


class _PathList(list):
    """Template list that remembers its dotted path from the root."""

    __slots__ = ("_template_path",)

    def __init__(self, items: list[Any], path: str) -> None:
        super().__init__(_with_paths(v, f"{path}.{i}") for i, v in enumerate(items))
        self._template_path = path


def _with_paths(value: Any, path: str) -> Any:
    if isinstance(value, Mapping):
        return _PathDict(value, path)
    if isinstance(value, list):
        return _PathList(value, path)
    return value


class VerbatimUndefined(ChainableUndefined):
    """Undefined that renders as the placeholder it came from."""

    __slots__ = ()

    def _path(self) -> str:
        name = "" if self._undefined_name is None else str(self._undefined_name)
        parent = getattr(self._undefined_obj, "_template_path", None)
        return f"{parent}.{name}" if parent else name

    def _check_safe(self) -> None:
        # Only the sandbox passes a hint: the access was refused as unsafe.
        if self._undefined_hint is not None:
            self._fail_with_undefined_error()

    def __str__(self) -> str:
        self._check_safe()
        return "{{ " + self._path() + " }}"

    def __getattr__(self, name: str) -> Any:
        if name[:2] == "__":
            raise AttributeError(name)
        self._check_safe()
        return type(self)(name=f"{self._path()}.{name}")

    def __getitem__(self, key: Any) -> Any:
        self._check_safe()
        return type(self)(name=f"{self._path()}.{key}")


_env = SandboxedEnvironment(
    undefined=VerbatimUndefined, autoescape=False, keep_trailing_newline=True
)


def template_variables(context: TriggerContext) -> dict[str, Any]:
    """Variables exposed to templates: every populated context field."""
    return {key: _with_paths(value, key) for key, value in context.to_dict().items()}


def render_text(template: str, context: TriggerContext, *, action_type: str | None = None) -> str:
    """Render one template string against a context.

    Raises:
        InvalidActionParameters: If the template does not parse, or touches
            an attribute the sandbox forbids.
    """
    if "{{" not in template and "{%" not in template:
        return template
    try:
        return _env.from_string(template).render(**template_variables(context))
    except TemplateError as exc:
        raise InvalidActionParameters(
            f"Invalid template: {exc}", action_type=action_type
        ) from exc


def render_value(value: Any, context: TriggerContext, *, action_type: str | None = None) -> Any:
    """Render every string inside a nested payload structure."""
    if isinstance(value, str):
        return render_text(value, context, action_type=action_type)
    if isinstance(value, dict):
        return {k: render_value(v, context, action_type=action_type) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v, context, action_type=action_type) for v in value]
    return value
