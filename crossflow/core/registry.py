"""Registry for structural detectors."""

import importlib
import logging
import pkgutil
from typing import Dict, Iterable, List, Optional, Type

from .models import AnalysisContext, Finding

logger = logging.getLogger(__name__)

_DETECTOR_REGISTRY: Dict[str, Type] = {}


def register(cls: Type) -> Type:
    """Decorator to register a detector class."""
    if not getattr(cls, "name", None):
        cls.name = cls.__name__.lower()

    if cls.name in _DETECTOR_REGISTRY:
        logger.warning(f"Detector {cls.name} is already registered. Overriding.")

    if not callable(getattr(cls, "analyze", None)):
        logger.error(f"Detector {cls.name} must implement 'analyze' method.")
        return cls

    _DETECTOR_REGISTRY[cls.name] = cls
    logger.debug(f"Registered detector: {cls.name}")
    return cls


def get_detector(name: str) -> Optional[Type]:
    """Get a detector by name."""
    return _DETECTOR_REGISTRY.get(name)


def get_registered_detectors() -> List[Type]:
    """Get all registered detector classes, ordered by name."""
    return [_DETECTOR_REGISTRY[name] for name in sorted(_DETECTOR_REGISTRY)]


def discover_detectors(package_name: str = "crossflow.detectors") -> None:
    """Import every detector module so its ``@register`` decorators run."""
    logger.debug(f"Discovering detectors in {package_name}")
    try:
        package = importlib.import_module(package_name)
    except ImportError as e:
        logger.error(f"Failed to import detector package {package_name}: {e}")
        return

    for _, name, is_pkg in pkgutil.walk_packages(package.__path__, package.__name__ + "."):
        if is_pkg:
            continue
        try:
            importlib.import_module(name)
        except Exception as e:
            logger.error(f"Failed to import detector module {name}: {e}")


class DetectorOrchestrator:
    """Runs structural detectors over one analysis context."""

    def __init__(self, detectors: Optional[Iterable[Type]] = None):
        if detectors is None:
            discover_detectors()
            self.detectors = get_registered_detectors()
        else:
            self.detectors = list(detectors)

    def run_detectors(self, context: AnalysisContext) -> List[Finding]:
        """
        Run every detector; a failing detector is logged and skipped.

        Args:
            context: Units, graph, transitions and flows of one batch

        Returns:
            Findings from all detectors that completed
        """
        all_findings: List[Finding] = []
        for detector_cls in self.detectors:
            name = getattr(detector_cls, "name", detector_cls.__name__)
            try:
                detector = detector_cls()
                logger.debug(f"Running detector: {name}")
                findings = list(detector.analyze(context))
            except Exception as e:
                logger.error(f"Error running detector {name}: {e}", exc_info=True)
                continue

            if findings:
                all_findings.extend(findings)
                logger.info(f"Detector {name} found {len(findings)} issues")

        return all_findings
