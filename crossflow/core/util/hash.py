"""
Utility functions for computing stable configuration hashes.
"""
import hashlib
import json
from typing import Any, Dict

# Fields that describe where a run reads or writes, not how it analyzes.
EXCLUDED_FIELDS = frozenset({"config_file", "json_file"})


def compute_config_hash(config: Any) -> str:
    """
    Compute a stable SHA256 hash of the configuration.

    The hash is computed over a normalized JSON representation with sorted
    keys, so two configurations that analyze the same way hash the same.

    Args:
        config: Configuration dictionary or RunConfig object

    Returns:
        SHA256 hash as hexadecimal string
    """
    config_dict = config.to_dict() if hasattr(config, "to_dict") else config
    normalized = normalize_config_for_hash(config_dict)
    canonical_json = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def normalize_config_for_hash(config: Dict[str, Any]) -> Dict[str, Any]:
    """Drop excluded and unset fields; empty containers are kept as-is."""

    def clean(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {
                key: clean(value)
                for key, value in obj.items()
                if key not in EXCLUDED_FIELDS and value is not None
            }
        if isinstance(obj, list):
            return [clean(item) for item in obj if item is not None]
        return obj

    return clean(config or {})
