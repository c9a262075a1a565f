"""
Vulnerability Scan Report Schemas

dep-scan emits one of two incompatible report shapes under a top-level
``vulnerabilities`` array:

- structured (CycloneDX VDR): ratings, ``affects[].ref`` package URLs and
  ``properties`` name/value pairs
- legacy: flat records naming ``component`` and ``version`` directly

``classify_report`` decides the shape once, from the first element, and
returns a tagged union the normalizer dispatches on exhaustively.
"""

import logging
import math
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


def finite_float(value: Any) -> Optional[float]:
    """Parse numbers and numeric strings; anything else (NaN included) is None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


class _ReportModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Rating(_ReportModel):
    severity: Optional[str] = None
    score: Optional[float] = None

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v: Any) -> Optional[float]:
        return finite_float(v)


class AffectedVersion(_ReportModel):
    version: Optional[str] = None
    status: Optional[str] = None
    range: Optional[str] = None


class Affect(_ReportModel):
    ref: Optional[str] = None
    versions: List[AffectedVersion] = Field(default_factory=list)


class Property(_ReportModel):
    name: Optional[str] = None
    value: Optional[Any] = None


class StructuredVulnerability(_ReportModel):
    id: Optional[str] = None
    description: Optional[str] = None
    detail: Optional[str] = None
    ratings: List[Rating] = Field(default_factory=list)
    affects: List[Affect] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)
    published: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    def property_value(self, *names: str) -> Optional[Any]:
        """Value of the first property whose name is one of ``names``."""
        for prop in self.properties:
            if prop.name in names:
                return prop.value
        return None


class LegacyVulnerability(_ReportModel):
    vuln_id: Optional[str] = None
    id: Optional[str] = None
    severity: Optional[str] = None
    summary: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    fixed_version: Optional[str] = None
    fixed_versions: List[str] = Field(default_factory=list, alias="fixedVersions")
    epss: Optional[float] = None
    component: Optional[str] = None
    version: Optional[str] = None
    ratings: List[Rating] = Field(default_factory=list)

    @field_validator("vuln_id", "id", mode="before")
    @classmethod
    def _ids(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("epss", mode="before")
    @classmethod
    def _epss(cls, v: Any) -> Optional[float]:
        return finite_float(v)

    @field_validator("aliases", "fixed_versions", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v if item]


class StructuredReport(BaseModel):
    kind: Literal["structured"] = "structured"
    vulnerabilities: List[StructuredVulnerability] = Field(default_factory=list)
    skipped: int = 0


class LegacyReport(BaseModel):
    kind: Literal["legacy"] = "legacy"
    vulnerabilities: List[LegacyVulnerability] = Field(default_factory=list)
    skipped: int = 0


ScanReport = Union[StructuredReport, LegacyReport]

M = TypeVar("M", bound=BaseModel)


def _validate_items(items: List[Any], model: Type[M]) -> tuple[List[M], int]:
    valid: List[M] = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed {model.__name__}: {e}")
            skipped += 1
    return valid, skipped


def is_structured(vulnerabilities: List[Any]) -> bool:
    """A report is structured when its first element carries an ``affects`` list."""
    if not vulnerabilities:
        return False
    first = vulnerabilities[0]
    return isinstance(first, dict) and isinstance(first.get("affects"), list)


def classify_report(report: Dict[str, Any]) -> ScanReport:
    """Parse a scan report into its tagged shape. An empty report is legacy."""
    raw = report.get("vulnerabilities") if isinstance(report, dict) else None
    items = raw if isinstance(raw, list) else []

    if is_structured(items):
        records, skipped = _validate_items(items, StructuredVulnerability)
        return StructuredReport(vulnerabilities=records, skipped=skipped)

    records, skipped = _validate_items(items, LegacyVulnerability)
    return LegacyReport(vulnerabilities=records, skipped=skipped)
