"""
Object storage capability used by the artifact uploader.
"""

from abc import ABC, abstractmethod


class ObjectStore(ABC):
    """Durable key/value blob storage."""

    @abstractmethod
    async def put(self, bucket: str, key: str, body: bytes) -> str:
        """
        Store a blob.

        Returns:
            Durable location of the stored object
        """
