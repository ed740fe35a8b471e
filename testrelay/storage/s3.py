"""
Amazon S3 implementation of the object storage capability.
"""

import asyncio
import mimetypes
from typing import Optional
from urllib.parse import quote

import boto3

from .base import ObjectStore


class S3ObjectStore(ObjectStore):
    """Object store backed by S3 (or an S3-compatible endpoint)."""

    def __init__(
        self,
        client=None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """
        Initialize the S3 object store.

        Args:
            client: Optional pre-built boto3 ``s3`` client
            region: AWS region used when building a client and locations
            endpoint_url: Custom S3-compatible endpoint
        """
        self.client = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )
        self.region = region or self.client.meta.region_name
        self.endpoint_url = endpoint_url

    async def put(self, bucket: str, key: str, body: bytes) -> str:
        params = {"Bucket": bucket, "Key": key, "Body": body}
        content_type, _ = mimetypes.guess_type(key)
        if content_type:
            params["ContentType"] = content_type

        await asyncio.to_thread(self.client.put_object, **params)
        return self.location(bucket, key)

    def location(self, bucket: str, key: str) -> str:
        """Public URL of an object, in the form S3 reports for uploads."""
        quoted = quote(key, safe="/")
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{bucket}/{quoted}"
        if not self.region or self.region == "us-east-1":
            return f"https://{bucket}.s3.amazonaws.com/{quoted}"
        return f"https://{bucket}.s3.{self.region}.amazonaws.com/{quoted}"
