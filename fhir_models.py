# fhir_models.py
"""
The subset of FHIR STU3 resources this server emits, as pydantic models, plus
the id and reference parameter types used by the providers.

Field names follow the FHIR JSON element names so that
`model_dump(exclude_none=True)` is the wire format.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field


class Coding(BaseModel):
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class CodeableConcept(BaseModel):
    coding: List[Coding] = Field(default_factory=list)
    text: Optional[str] = None


class Reference(BaseModel):
    reference: str


class Extension(BaseModel):
    url: str
    valueCoding: Optional[Coding] = None


class CoverageGrouping(BaseModel):
    subGroup: Optional[str] = None
    subPlan: Optional[str] = None


class Coverage(BaseModel):
    resourceType: str = "Coverage"
    id: str
    status: str = "active"
    type: Optional[CodeableConcept] = None
    beneficiary: Reference
    grouping: CoverageGrouping
    extension: List[Extension] = Field(default_factory=list)


class BundleLink(BaseModel):
    relation: str
    url: str


class BundleEntry(BaseModel):
    resource: Coverage


class Bundle(BaseModel):
    resourceType: str = "Bundle"
    type: str = "searchset"
    total: int = 0
    link: List[BundleLink] = Field(default_factory=list)
    entry: List[BundleEntry] = Field(default_factory=list)

    def add_link(self, relation: str, url: str) -> BundleLink:
        link = BundleLink(relation=relation, url=url)
        self.link.append(link)
        return link

    def get_link(self, relation: str) -> Optional[BundleLink]:
        for link in self.link:
            if link.relation == relation:
                return link
        return None

    def add_entry(self, resource: Coverage) -> BundleEntry:
        entry = BundleEntry(resource=resource)
        self.entry.append(entry)
        return entry


@dataclass(frozen=True)
class IdType:
    """
    A FHIR logical id as it appears in a request path:
      [ResourceType/]id[/_history/version]
    """
    id_part: Optional[str]
    resource_type: Optional[str] = None
    version_id_part: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "IdType":
        resource_type = None
        version = None
        rest = value
        if "/_history/" in rest:
            rest, version = rest.split("/_history/", 1)
        if "/" in rest:
            resource_type, rest = rest.rsplit("/", 1)
        return cls(id_part=rest, resource_type=resource_type or None, version_id_part=version or None)

    def has_version_id_part(self) -> bool:
        return bool(self.version_id_part)

    def __str__(self) -> str:
        text = f"{self.resource_type}/{self.id_part}" if self.resource_type else str(self.id_part)
        if self.version_id_part:
            text += f"/_history/{self.version_id_part}"
        return text


@dataclass(frozen=True)
class ReferenceParam:
    """A reference search parameter, e.g. `beneficiary=Patient/123` or `beneficiary=123`."""
    value: str

    @property
    def id_part(self) -> str:
        return IdType.parse(self.value).id_part or ""
