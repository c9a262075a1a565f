"""
SBOM Schema Definitions

Pydantic models for the CycloneDX dependency graph as the extraction
pipeline sees it: components keyed by bom-ref, the dependsOn adjacency list,
and the normalized dependency records parsed out of them.
"""

from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NameVersion(NamedTuple):
    """Resolved package coordinates for a bom-ref."""

    name: str
    version: str

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"


class Component(BaseModel):
    """A CycloneDX component. Only the fields the pipeline reads are typed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bom_ref: Optional[str] = Field(
        None, validation_alias=AliasChoices("bom-ref", "bomRef", "bom_ref")
    )
    type: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    purl: Optional[str] = None
    licenses: Any = None


class BomDependency(BaseModel):
    """One entry of the CycloneDX ``dependencies`` adjacency list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ref: str
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")


class BomRelationship(NamedTuple):
    """Raw parent -> child edge, unfiltered by reachability."""

    parent_ref: str
    child_ref: str


class ParsedSbomDependency(BaseModel):
    """A dependency reachable from the root component."""

    name: str
    version: str
    license: Optional[str] = None
    is_direct: bool
    source: str
    bom_ref: str

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"


class ParsedSBOM(BaseModel):
    """Result of parsing one BOM. A pure function of the input document."""

    root_ref: Optional[str] = None
    direct_refs: List[str] = Field(default_factory=list)
    dependencies: List[ParsedSbomDependency] = Field(default_factory=list)
    relationships: List[BomRelationship] = Field(default_factory=list)
    ref_lookup: Dict[str, NameVersion] = Field(default_factory=dict)

    # Statistics
    total_components: int = 0
    reachable_refs: int = 0
    skipped_components: int = 0

    @property
    def direct_count(self) -> int:
        return sum(1 for d in self.dependencies if d.is_direct)

    @property
    def transitive_count(self) -> int:
        return len(self.dependencies) - self.direct_count
