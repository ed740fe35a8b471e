"""
Object store that mirrors uploads into a local directory.

Useful for development and for hosts without object storage; locations
are ``file://`` URIs.
"""

import asyncio
from pathlib import Path
from typing import Union

from .base import ObjectStore


class LocalObjectStore(ObjectStore):
    """Writes each object to ``<root>/<bucket>/<key>``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    async def put(self, bucket: str, key: str, body: bytes) -> str:
        target = self.root / bucket / key
        await asyncio.to_thread(self._write, target, body)
        return target.resolve().as_uri()

    @staticmethod
    def _write(target: Path, body: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(body)
