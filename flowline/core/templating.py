"""Placeholder substitution for node configuration strings."""

import json
from typing import Any, Dict, Mapping


def render_value(value: Any) -> str:
    """Render a payload value the way it should appear inside a template.

    Booleans render as ``true``/``false``, ``None`` as an empty string,
    whole-number floats without a trailing ``.0``, and containers as compact
    JSON. Everything else goes through ``str``.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def substitute(template: str, values: Any) -> str:
    """Replace every ``{{key}}`` in ``template`` with the rendered value.

    Keys are matched literally; there is no nested path lookup and replaced
    text is not scanned again for the same key. Placeholders without a
    matching key are left in place.

    Args:
        template: Text containing ``{{key}}`` placeholders
        values: Mapping of placeholder names to values

    Returns:
        The template with known placeholders replaced
    """
    if not template or not isinstance(values, Mapping) or not values:
        return template

    result = template
    for key, value in values.items():
        placeholder = "{{" + str(key) + "}}"
        if placeholder in result:
            result = result.replace(placeholder, render_value(value))
    return result


def flatten_payload(payload: Any) -> Dict[str, Any]:
    """Return the payload if it is a mapping, otherwise an empty dict."""
    if isinstance(payload, Mapping):
        return dict(payload)
    return {}
