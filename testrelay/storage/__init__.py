"""Artifact upload and object storage backends for Test Relay."""

from .base import ObjectStore
from .local import LocalObjectStore
from .models import UploadedArtifact, UploadSummary
from .uploader import ArtifactUploader, build_object_key

__all__ = [
    "ObjectStore",
    "LocalObjectStore",
    "UploadedArtifact",
    "UploadSummary",
    "ArtifactUploader",
    "build_object_key",
]
