"""
Configuration schema for crossflow.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DetectorConfig(BaseModel):
    """Detector selection: exact names, globs, or ``category:<glob>`` selectors."""
    model_config = ConfigDict(extra="ignore")

    enabled: List[str] = Field(default_factory=list)
    disabled: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)


class AnalysisConfig(BaseModel):
    """Configuration for the analysis pipeline."""
    model_config = ConfigDict(extra="ignore")

    grammar: str = "solidity"
    critical_degree_threshold: int = 3
    dedup_policy: str = "per-detector"  # per-detector, global
    include_critical_paths: bool = True
    include_invariants: bool = True


class OutputConfig(BaseModel):
    """Configuration for output formatting and destinations."""
    model_config = ConfigDict(extra="ignore")

    format: str = "table"  # table, json
    json_file: Optional[str] = None
    min_severity: str = "LOW"


class ReportingConfig(BaseModel):
    """Configuration for CI gating."""
    model_config = ConfigDict(extra="ignore")

    fail_on_findings: bool = False
    fail_on_severity: Optional[str] = None


class IgnoreConfig(BaseModel):
    """Files left out when collecting sources from a directory."""
    model_config = ConfigDict(extra="ignore")

    patterns: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    directories: List[str] = Field(default_factory=lambda: ["node_modules", "lib", ".git"])


class RunConfig(BaseModel):
    """Complete runtime configuration."""
    model_config = ConfigDict(extra="ignore")

    detectors: DetectorConfig = Field(default_factory=DetectorConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    ignore: IgnoreConfig = Field(default_factory=IgnoreConfig)

    config_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for serialization."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RunConfig:
        """Create RunConfig from a dictionary; raises ``pydantic.ValidationError`` on bad values."""
        return cls.model_validate(data or {})
