"""Compose service topology.

Only used to discover which services are workers, which decides how many
sibling publish and task-definition tasks a plan fans out to.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ComposeService(BaseModel):
    """A service entry from a docker-compose file."""

    model_config = ConfigDict(extra="ignore")

    name: str
    image: str | None = None
    labels: dict[str, Any] = Field(default_factory=dict)
    environment: dict[str, str] = Field(default_factory=dict)

    def is_worker(self, label: str) -> bool:
        """Whether the service carries a truthy worker label."""
        value = self.labels.get(label)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return value is True

    @property
    def experiment(self) -> str:
        """Experiment name, the service name without its _worker suffix."""
        return self.name.split("_worker")[0]


class ServiceTopology(BaseModel):
    """Services of a project, in compose file order."""

    model_config = ConfigDict(extra="forbid")

    services: list[ComposeService] = Field(default_factory=list)
    worker_label: str = "isPushkinWorker"

    @property
    def workers(self) -> list[ComposeService]:
        """Services marked as workers."""
        return [s for s in self.services if s.is_worker(self.worker_label)]

    @classmethod
    def from_compose(
        cls, data: dict[str, Any], worker_label: str = "isPushkinWorker"
    ) -> ServiceTopology:
        """Build a topology from parsed compose YAML.

        Compose allows labels and environment as either a mapping or a list
        of ``KEY=VALUE`` strings; both are normalized to mappings.
        """
        services: list[ComposeService] = []
        for name, body in (data.get("services") or {}).items():
            body = body or {}
            services.append(
                ComposeService(
                    name=name,
                    image=body.get("image"),
                    labels=_as_mapping(body.get("labels")),
                    environment={
                        k: "" if v is None else str(v)
                        for k, v in _as_mapping(body.get("environment")).items()
                    },
                )
            )
        return cls(services=services, worker_label=worker_label)


def _as_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    mapping: dict[str, Any] = {}
    for item in value:
        key, _, raw = str(item).partition("=")
        mapping[key] = raw
    return mapping
