"""Pydantic models for values returned to callers.

Control-plane entities themselves (apps, revisions, replicas, secrets) use
the SDK's generated models; these are the small read-only projections the
orchestrator computes from them.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, model_validator


class IngressConfiguration(BaseModel):
    """Public hostnames of a container app."""

    model_config = {"frozen": True, "populate_by_name": True}

    host_names: list[str] = Field(default_factory=list, alias="hostNames")


class ReplicaStatus(BaseModel):
    """Replica counts for one revision at one point in time."""

    model_config = {"frozen": True}

    total: Annotated[int, Field(ge=0)] = 0
    running: Annotated[int, Field(ge=0)] = 0
    ready: Annotated[int, Field(ge=0)] = 0

    @model_validator(mode="after")
    def check_counts(self) -> ReplicaStatus:
        if self.running > self.total or self.ready > self.total:
            raise ValueError("running and ready counts cannot exceed total replicas")
        return self
