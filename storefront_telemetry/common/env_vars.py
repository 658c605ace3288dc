"""
A place for defining and referencing the environment variables read by storefront-telemetry.
"""

import os
from typing import Sequence

__all__: Sequence[str] = (
    "CI_MODE_ENV_VAR",
    "get_boolean_env_var",
)

CI_MODE_ENV_VAR = "CI_MODE"
"""When set to 'true', turns on probability-gated crash injection regardless of the config file.
"""


def get_boolean_env_var(name: str) -> bool:
    """For all env vars that are either on or off.

    An env var is ON iff:
    - it is defined
    - its value is the literal string 'true'

    If it is present but not set to 'true', it is considered to be OFF.
    """
    value = os.environ.get(name)
    if value is None:
        return False
    value = value.strip().lower()
    return "true" == value
