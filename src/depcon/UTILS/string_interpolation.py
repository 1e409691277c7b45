"""
Utilities for substituting environment variables into configuration text.
"""
import re
from typing import Dict

from ..errors import ConfigError

# ${VAR} or ${VAR:-default}
_PLACEHOLDER = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}')


def interpolate(template: str, context: Dict[str, str]) -> str:
    """
    Replaces ``${VAR}`` and ``${VAR:-default}`` placeholders in the template.

    :param template: Text containing placeholders.
    :param context: Variables available for substitution.
    :return: The substituted text.
    :raises ConfigError: If a variable without a default is unset.
    """
    def replace(match):
        name, default = match.group(1), match.group(2)
        value = context.get(name)
        if value:
            return value
        if default is not None:
            return default
        if value is not None:
            return value
        raise ConfigError(f"Variable {name} is not set and has no default")

    return _PLACEHOLDER.sub(replace, template)
