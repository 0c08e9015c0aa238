"""Configuration package exports."""

from .loader import CONFIG_EXTENSIONS, MERGE_EXCLUDE, deep_merge, load_config_file
from .models import DEFAULT_DUPLICATE_SCOPE, DuplicateRequestsPolicy, SpiderConfig

__all__ = [
    "CONFIG_EXTENSIONS",
    "DEFAULT_DUPLICATE_SCOPE",
    "DuplicateRequestsPolicy",
    "MERGE_EXCLUDE",
    "SpiderConfig",
    "deep_merge",
    "load_config_file",
]
