# workflow_testlab/interpolation.py
import json
import re
from typing import Any, Mapping

PLACEHOLDER = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")

_MISSING = object()


def lookup(context: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Resolve ``path`` against the context.

    An exact key wins, so ``{"payload.title": ...}`` is found before walking
    ``context["payload"]["title"]``. List segments may be numeric indexes.
    """
    if path in context:
        return context[path]
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(template: Any, context: Mapping[str, Any]) -> Any:
    """Replace every ``{{name}}`` in ``template`` with its context value.

    Placeholders whose key is absent (or ``None``) are left untouched.
    Non-string templates pass through unchanged.
    """
    if template is None:
        return ""
    if not isinstance(template, str):
        return template

    def replace(match: "re.Match[str]") -> str:
        value = lookup(context, match.group(1), _MISSING)
        if value is _MISSING or value is None:
            return match.group(0)
        return _render(value)

    return PLACEHOLDER.sub(replace, template)


def interpolate_values(values: Any, context: Mapping[str, Any]) -> Any:
    """Interpolate strings nested anywhere inside dicts and lists."""
    if isinstance(values, dict):
        return {k: interpolate_values(v, context) for k, v in values.items()}
    if isinstance(values, list):
        return [interpolate_values(v, context) for v in values]
    if isinstance(values, str):
        return interpolate(values, context)
    return values


def resolve_reference(ref: Any, context: Mapping[str, Any]) -> Any:
    """Turn ``"{{payload.transcript}}"`` or ``"payload.transcript"`` into the raw context value."""
    if not isinstance(ref, str):
        return ref
    match = PLACEHOLDER.fullmatch(ref.strip())
    path = match.group(1) if match else ref.strip()
    return lookup(context, path)
