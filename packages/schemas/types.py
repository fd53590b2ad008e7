from __future__ import annotations
import math
from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import ReportValidationError


class BoundingBox(NamedTuple):
    south: float
    west: float
    north: float
    east: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def contains(self, lat: float, lon: float) -> bool:
        if not (self.south <= lat <= self.north):
            return False
        if self.crosses_antimeridian:
            return lon >= self.west or lon <= self.east
        return self.west <= lon <= self.east


class Report(BaseModel):
    """A stored incident report. Serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    category: str
    description: str
    location: str = ""
    # legacy names written by the first version of the app
    attachment_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("attachmentName", "fileName", "attachment_name"),
        serialization_alias="attachmentName",
    )
    latitude: float
    longitude: float
    created_at: datetime = Field(
        validation_alias=AliasChoices("createdAt", "timestamp", "created_at"),
        serialization_alias="createdAt",
    )
    resolved: bool = False
    resolution_note: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("resolutionNote", "resolutionDescription", "resolution_note"),
        serialization_alias="resolutionNote",
    )

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ReportDraft(BaseModel):
    """A submission before the store assigns id and createdAt."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    category: str
    description: str
    location: str = ""
    attachment_name: Optional[str] = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @field_validator("category", "description")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("location", mode="before")
    @classmethod
    def _optional_text(cls, v):
        return (v or "").strip()

    @field_validator("latitude", "longitude")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v

    @classmethod
    def build(cls, **fields) -> "ReportDraft":
        """Validate raw submission fields, raising ReportValidationError on bad input."""
        try:
            return cls(**fields)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ReportValidationError(problems) from e
