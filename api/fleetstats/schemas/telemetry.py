from pydantic import BaseModel, Field


class TelemetryEvent(BaseModel):
    """One sanitized ping. Every field has a safe default."""

    instance_id: str = "unknown"
    version: str = "unknown"
    os: str = "unknown"
    arch: str = "unknown"
    cpu_model: str = "unknown"
    country: str = "Unknown"  # from transport metadata, never the query string
    cpu_cores: int = Field(default=0, ge=0)
    ram_gb: int = Field(default=0, ge=0)
    cameras: int = Field(default=0, ge=0)
    groups: int = Field(default=0, ge=0)
    events: int = Field(default=0, ge=0)
    gpu_enabled: bool = False
    notifications_enabled: bool = False


class DataPoint(BaseModel):
    """Wire shape written to the analytics store.

    blobs:   instance_id, version, os, arch, cpu_model, country
    doubles: cpu_cores, ram_gb, cameras, groups, events, gpu, notifications
    indexes: [instance_id]
    """

    blobs: list[str]
    doubles: list[float]
    indexes: list[str]

    @classmethod
    def from_event(cls, event: TelemetryEvent) -> "DataPoint":
        return cls(
            blobs=[
                event.instance_id,
                event.version,
                event.os,
                event.arch,
                event.cpu_model,
                event.country,
            ],
            doubles=[
                event.cpu_cores,
                event.ram_gb,
                event.cameras,
                event.groups,
                event.events,
                1 if event.gpu_enabled else 0,
                1 if event.notifications_enabled else 0,
            ],
            indexes=[event.instance_id],
        )


class FacetEntry(BaseModel):
    name: str
    count: int


class StatsResponse(BaseModel):
    active_installs: int = 0
    total_installs: int = 0
    versions: list[FacetEntry] = []
    countries: list[FacetEntry] = []
    cpu_models: list[FacetEntry] = []
    cpu_cores: list[FacetEntry] = []
    os: list[FacetEntry] = []
    arch: list[FacetEntry] = []
    ram: list[FacetEntry] = []
    total_cameras: int = 0
    total_groups: int = 0
    total_events: int = 0
    gpu_enabled: int = 0
    notifications_enabled: int = 0
    cameras_dist: list[FacetEntry] = []
    groups_dist: list[FacetEntry] = []


class ErrorResponse(BaseModel):
    error: str
