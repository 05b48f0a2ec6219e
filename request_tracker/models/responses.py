# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the reporting API.
#
# DESIGN DECISION: Separate response models from DB models
# The access tables carry internal columns (role_key, dedup_key) that only
# exist to make the upserts atomic. Response models control exactly what
# is exposed.
# =============================================================================

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class AccessSummaryResponse(BaseModel):
    """One user/role/day aggregate."""

    id: str
    user_id: str
    role_id: str | None
    role_name: str | None
    date: date
    access_count: int
    first_access: datetime
    last_access: datetime
    session_id: str | None = None
    ip_address: str | None = None
    device_type: str | None = None
    browser: str | None = None
    platform: str | None = None

    model_config = ConfigDict(from_attributes=True)


class AccessSummaryListResponse(BaseModel):
    summaries: list[AccessSummaryResponse]
    count: int = Field(description="Number of rows in this page")


class AccessDetailResponse(BaseModel):
    """One endpoint visit row (deduplicated per day, or one per request)."""

    id: str
    summary_id: str
    user_id: str
    role_id: str | None
    role_name: str | None
    date: date
    method: str
    endpoint: str
    route_name: str | None = None
    module: str
    submodule: str | None = None
    label: str | None = None
    visit_count: int
    first_visit: datetime
    last_visit: datetime

    model_config = ConfigDict(from_attributes=True)


class AccessDetailListResponse(BaseModel):
    details: list[AccessDetailResponse]
    count: int = Field(description="Number of rows in this page")


class ActivitySummaryResponse(BaseModel):
    """Totals for one user over a date range."""

    user_id: str
    role_id: str | None = None
    start: date | None = None
    end: date | None = None
    active_days: int
    total_accesses: int
    first_access: datetime | None = None
    last_access: datetime | None = None


class ActiveStatusResponse(BaseModel):
    """Whether a user was seen within the last `threshold_minutes`."""

    user_id: str
    role_id: str | None = None
    active: bool
    last_access: datetime | None = None
    threshold_minutes: int


class ModuleUsageResponse(BaseModel):
    """Per-module usage for one user."""

    module: str
    submodule: str | None = None
    unique_endpoints: int
    total_visits: int
    last_visit: datetime | None = None


class ModulesAccessedResponse(BaseModel):
    user_id: str
    role_id: str | None = None
    modules: list[ModuleUsageResponse]


class ModuleUserResponse(BaseModel):
    user_id: str
    total_visits: int
    last_visit: datetime | None = None


class ModuleUsersResponse(BaseModel):
    """Users who accessed a module."""

    module: str
    submodule: str | None = None
    users: list[ModuleUserResponse]


class ModuleBreakdownItem(BaseModel):
    module: str
    users: int
    total_visits: int
    unique_endpoints: int


class ModuleBreakdownResponse(BaseModel):
    start: date | None = None
    end: date | None = None
    modules: list[ModuleBreakdownItem]


class UserJourneyResponse(BaseModel):
    """Endpoints a user touched on one day, in the order first visited."""

    user_id: str
    date: date
    steps: list[AccessDetailResponse]
