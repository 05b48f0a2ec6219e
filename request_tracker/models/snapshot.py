# =============================================================================
# Request Snapshot — serialisable input to the tracking pipeline
# =============================================================================
#
# Everything the pipeline needs about one completed request, resolved by the
# web process (identity, role, handler directive) and free of framework
# objects. The same snapshot is processed inline or shipped to a Celery
# worker as JSON:
#
#   payload = snapshot.model_dump(mode="json")
#   snapshot = RequestSnapshot.model_validate(payload)
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from request_tracker.services.patterns import TrackingDirective, normalize_path


class RequestSnapshot(BaseModel):
    """Fully-resolved description of one request to be tracked."""

    model_config = ConfigDict(frozen=True)

    # --- Request ---
    method: str = Field(description="HTTP method, upper-cased")
    path: str = Field(description="Request path without leading/trailing '/'")
    route_name: str | None = None
    controller_id: str | None = Field(
        default=None,
        description="Handler identifier, '<module>.<qualname>'",
    )

    # --- Identity (None user_id means 'do not track') ---
    user_id: str | None = None
    role_id: str | None = None
    role_name: str | None = None
    session_id: str | None = None

    # --- Client ---
    ip_address: str | None = None
    user_agent: str | None = None

    occurred_at: datetime

    # --- Declared handler directive ---
    declared_module: str | None = None
    declared_submodule: str | None = None
    declared_label: str | None = None
    opt_in: bool = Field(
        default=False,
        description="Handler opted in to per-endpoint detail tracking",
    )

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_path(value)

    @field_validator("user_id", "role_id", "session_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        # Integer primary keys from the host are stored as strings
        if value is None or value == "":
            return None
        return str(value)

    @property
    def declared(self) -> TrackingDirective | None:
        if not self.declared_module:
            return None
        return TrackingDirective(
            module=self.declared_module,
            submodule=self.declared_submodule,
            label=self.declared_label,
        )
