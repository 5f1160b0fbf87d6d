"""Request schemas for the marketplace API.

Bodies and query strings are validated here before any service code runs;
a failing payload surfaces as a pydantic ValidationError with per-field
detail, which app.py turns into a 400 response.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GigStatus = Literal["ACTIVE", "PAUSED", "INACTIVE"]
GigSortField = Literal["createdAt", "price", "rating", "orderCount", "viewCount"]
SortOrder = Literal["asc", "desc"]


class ApiModel(BaseModel):
    """Accepts camelCase keys on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def form_args(args) -> dict:
    """Drop empty query-string values so optional fields fall back to defaults."""
    return {key: value for key, value in args.items() if value not in (None, "")}


# =============================================================================
# Gigs
# =============================================================================


class PackageSpec(ApiModel):
    """A purchasable tier as stored on a gig."""

    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=10, max_length=500)
    price: float = Field(..., ge=5, le=100000)
    delivery_days: int = Field(..., ge=1, le=90)
    revisions: int = Field(..., ge=0, le=10)
    features: list[str] = Field(..., min_length=1, max_length=20)


class CreateGigRequest(ApiModel):
    title: str = Field(..., min_length=10, max_length=100)
    description: str = Field(..., min_length=100, max_length=2000)
    deliverables: list[str] = Field(..., min_length=1, max_length=10)
    packages: list[PackageSpec] = Field(..., min_length=1, max_length=3)
    gallery: list[str] = Field(default_factory=list, max_length=10)
    tags: list[str] = Field(default_factory=list, max_length=10)
    category_id: int

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        return [t.strip().lower() for t in v if t.strip()]


class UpdateGigRequest(ApiModel):
    title: str | None = Field(None, min_length=10, max_length=100)
    description: str | None = Field(None, min_length=100, max_length=2000)
    deliverables: list[str] | None = Field(None, min_length=1, max_length=10)
    packages: list[PackageSpec] | None = Field(None, min_length=1, max_length=3)
    gallery: list[str] | None = Field(None, max_length=10)
    tags: list[str] | None = Field(None, max_length=10)
    category_id: int | None = None
    status: GigStatus | None = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return [t.strip().lower() for t in v if t.strip()]


class GigQuery(ApiModel):
    """Query string of GET /api/gigs."""

    category: str | None = None
    min_price: float | None = Field(None, ge=0)
    max_price: float | None = Field(None, ge=0)
    search: str | None = Field(None, max_length=200)
    status: GigStatus | None = None
    freelancer: int | None = None
    delivery_time: int | None = Field(None, ge=1)
    rating: float | None = Field(None, ge=0, le=5)
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1)
    sort_by: GigSortField = "createdAt"
    sort_order: SortOrder = "desc"


# =============================================================================
# Orders
# =============================================================================


class PackageClaim(ApiModel):
    """Client-asserted package snapshot; checked against the stored catalog."""

    name: str
    price: float = Field(..., ge=1)
    delivery_days: int = Field(..., ge=1)
    features: list[str]


class OrderGigRequest(ApiModel):
    package_index: int = Field(..., ge=0, le=2)
    package_data: PackageClaim


class OrderListQuery(ApiModel):
    role: Literal["buyer", "seller"] = "buyer"


# =============================================================================
# Jobs
# =============================================================================


class CreateJobRequest(ApiModel):
    title: str = Field(..., min_length=10, max_length=100)
    description: str = Field(..., min_length=20, max_length=5000)
    budget: float = Field(..., gt=0, le=1000000)
    category_id: int | None = None
    skills: list[str] = Field(default_factory=list, max_length=20)

    @field_validator("skills")
    @classmethod
    def normalize_skills(cls, v: list[str]) -> list[str]:
        return [s.lower().strip() for s in v if s.strip()]


class JobQuery(ApiModel):
    category: str | None = None
    search: str | None = Field(None, max_length=200)
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1)


class ApplyToJobRequest(ApiModel):
    cover_letter: str = Field(..., min_length=10, max_length=2000)
    proposed_budget: float = Field(..., gt=0, le=1000000)
    estimated_days: int = Field(..., ge=1, le=365)


# =============================================================================
# Users & notifications
# =============================================================================


class CheckUsernameRequest(ApiModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_]+$")


class MarkReadRequest(ApiModel):
    ids: list[int] = Field(default_factory=list)
