"""
Data models for uploaded artifacts.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadedArtifact(BaseModel):
    """Durable location of one uploaded result file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    relative_path: str = Field(..., description="Path below the result root, '/'-separated")
    key: str = Field(..., description="Object storage key")
    location: str = Field(..., description="Durable location returned by the store")
    size: int = Field(..., ge=0, description="File size in bytes")


class UploadSummary(BaseModel):
    """All artifacts uploaded for one run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    bucket: str
    run_token: str
    artifacts: List[UploadedArtifact] = Field(default_factory=list)
    manifest: Optional[UploadedArtifact] = None
    duration: float = Field(0.0, ge=0)

    @property
    def result_uri(self) -> Optional[str]:
        return self.manifest.location if self.manifest else None

    @property
    def total_bytes(self) -> int:
        return sum(a.size for a in self.artifacts)
