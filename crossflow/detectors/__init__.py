"""
Structural detectors with selector support.
"""
import fnmatch
from typing import Any, Dict, List, Tuple

from ..config.schema import RunConfig
from ..core.registry import discover_detectors, get_registered_detectors


def load_detectors(config: RunConfig) -> Tuple[List[Any], List[str], Dict[str, List[str]]]:
    """
    Select detectors according to configuration.

    Explicit disable beats explicit enable, which beats the detector default.

    Returns:
        Tuple of (enabled_detectors, warnings, explanation_map)
    """
    discover_detectors()
    all_detectors = get_registered_detectors()
    warnings: List[str] = []
    explanation_map: Dict[str, List[str]] = {}

    enabled_set = {d.name for d in all_detectors if getattr(d, "enabled_by_default", True)}
    disabled_set = set()

    for selector in config.detectors.enabled:
        matched = match_detectors(all_detectors, selector)
        if not matched:
            warnings.append(f"Enabled selector '{selector}' matches no detectors")
            continue
        enabled_set.update(d.name for d in matched)
        explanation_map[selector] = [d.name for d in matched]

    for selector in config.detectors.disabled:
        matched = match_detectors(all_detectors, selector)
        if not matched:
            warnings.append(f"Disabled selector '{selector}' matches no detectors")
            continue
        disabled_set.update(d.name for d in matched)
        explanation_map[selector] = [d.name for d in matched]

    final_enabled = enabled_set - disabled_set
    enabled_detectors = [d for d in all_detectors if d.name in final_enabled]

    if config.detectors.categories:
        category_filtered = []
        for detector in enabled_detectors:
            category = getattr(detector, "category", "unknown")
            if any(fnmatch.fnmatch(category, pattern) for pattern in config.detectors.categories):
                category_filtered.append(detector)
            else:
                warnings.append(f"Detector '{detector.name}' excluded due to category filter")
        enabled_detectors = category_filtered

    return enabled_detectors, warnings, explanation_map


def match_detectors(all_detectors: List[Any], selector: str) -> List[Any]:
    """
    Match detectors against a selector.

    Supports:
    - Exact name match: "reentrancy"
    - Glob patterns: "access_*", "*_call"
    - Category patterns: "category:delegatecall", "category:*"
    """
    matched = []
    for detector in all_detectors:
        matcher = getattr(detector, "matches_selector", None)
        if callable(matcher):
            if matcher(selector):
                matched.append(detector)
            continue
        name = getattr(detector, "name", "")
        category = getattr(detector, "category", "")
        if selector.startswith("category:"):
            pattern = selector.split(":", 1)[1]
            if pattern == "*" or fnmatch.fnmatch(category, pattern):
                matched.append(detector)
        elif name == selector or fnmatch.fnmatch(name, selector):
            matched.append(detector)
    return matched
