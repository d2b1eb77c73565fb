from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kpi_core.dimensions import Category, Domain, Granularity, Scope, Technology, Vendor
from kpi_core.filters import FilterSelection
from kpi_core.timegrain import INVALID_RANGE_REASON, TimeRange


class TimeRangeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: datetime = Field(alias="from")
    end: datetime = Field(alias="to")

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRangeModel":
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise ValueError("'from' and 'to' must both carry a timezone or neither")
        if self.start >= self.end:
            raise ValueError(INVALID_RANGE_REASON)
        return self


class FilterSelectionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    technologies: List[Technology] = Field(default_factory=list)
    vendors: List[Vendor] = Field(default_factory=list)
    domains: List[Domain] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    scopes: List[Scope] = Field(default_factory=list)
    time_range: TimeRangeModel = Field(alias="timeRange")
    granularity: Granularity

    @classmethod
    def from_selection(cls, selection: FilterSelection) -> "FilterSelectionModel":
        return cls(
            technologies=list(selection.technologies),
            vendors=list(selection.vendors),
            domains=list(selection.domains),
            categories=list(selection.categories),
            scopes=list(selection.scopes),
            time_range=TimeRangeModel(start=selection.time_range.start, end=selection.time_range.end),
            granularity=selection.granularity,
        )

    def to_selection(self) -> FilterSelection:
        return FilterSelection(
            technologies=tuple(self.technologies),
            vendors=tuple(self.vendors),
            domains=tuple(self.domains),
            categories=tuple(self.categories),
            scopes=tuple(self.scopes),
            time_range=TimeRange(self.time_range.start, self.time_range.end),
            granularity=self.granularity,
        )


class SavedViewRecord(BaseModel):
    """One persisted saved view, as stored in the views file."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    description: Optional[str] = None
    filters: FilterSelectionModel
    kpis: List[str] = Field(default_factory=list)
    scope: Scope
    scope_label: Optional[str] = Field(default=None, alias="scopeLabel")
    created_at: datetime = Field(alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
