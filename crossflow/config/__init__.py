"""Configuration schema and layered loading."""

from .loader import ConfigLoader, compute_config_hash, load_config, write_config
from .schema import AnalysisConfig, DetectorConfig, IgnoreConfig, OutputConfig, ReportingConfig, RunConfig

__all__ = [
    "AnalysisConfig",
    "ConfigLoader",
    "DetectorConfig",
    "IgnoreConfig",
    "OutputConfig",
    "ReportingConfig",
    "RunConfig",
    "compute_config_hash",
    "load_config",
    "write_config",
]
