"""Feature flags gating the background pipelines.

Both pipelines are off unless explicitly enabled, so a fresh deployment
never calls a paid provider by accident.
"""

import os
from typing import Dict, Optional

FLAG_ENV_VARS: Dict[str, str] = {
    "image-cleanup": "WARDROBE_IMAGE_CLEANUP_ENABLED",
    "attribute-detection": "WARDROBE_AI_ATTRIBUTES_ENABLED",
}

_TRUE_VALUES = ("1", "true", "yes", "on")


def parse_flag(value: Optional[str], default: bool = False) -> bool:
    """Parse a flag value; unset or blank falls back to the default."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def is_pipeline_enabled(pipeline: str, default: bool = False) -> bool:
    """
    Check whether a pipeline is enabled.

    Args:
        pipeline: Pipeline name (image-cleanup, attribute-detection)
        default: Value used when the environment variable is unset

    Returns:
        True if the pipeline's flag is set to a truthy value
    """
    env_var = FLAG_ENV_VARS.get(pipeline)
    if env_var is None:
        return False
    return parse_flag(os.getenv(env_var), default=default)
