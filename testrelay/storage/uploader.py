"""
Recursive artifact uploader.

Mirrors a local result tree into object storage under a run-scoped key
prefix and reports where the result manifest ended up.
"""

import asyncio
import time
from pathlib import Path, PurePath
from typing import Iterator, List, Optional, Union

from ..core.exceptions import RunTimeoutError, UploadError
from ..core.logging_config import get_logger, log_performance
from .base import ObjectStore
from .models import UploadedArtifact, UploadSummary


DEFAULT_CONCURRENCY = 8
MANIFEST_NAME = "index.json"


def build_object_key(run_token: str, relative_path: PurePath, prefix: str = "") -> str:
    """
    Compute the storage key for a file below the result root.

    Host path separators are normalized to "/" so keys are identical on
    every platform.
    """
    parts = [prefix.strip("/"), run_token, relative_path.as_posix()]
    return "/".join(part for part in parts if part)


def iter_files(directory: Path) -> Iterator[Path]:
    """Yield every regular file below a directory, depth first."""
    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            yield from iter_files(entry)
        elif entry.is_file():
            yield entry


class ArtifactUploader:
    """
    Uploads a result tree file by file.

    Transfers run concurrently, bounded by ``concurrency``. Any failed
    transfer fails the whole upload and cancels the transfers still
    running.
    """

    def __init__(
        self,
        store: ObjectStore,
        concurrency: int = DEFAULT_CONCURRENCY,
        key_prefix: str = "",
        manifest_name: str = MANIFEST_NAME,
    ):
        """
        Initialize the artifact uploader.

        Args:
            store: Object storage backend
            concurrency: Maximum transfers in flight
            key_prefix: Optional prefix placed before the run token
            manifest_name: Relative path of the canonical result manifest
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.store = store
        self.concurrency = concurrency
        self.key_prefix = key_prefix
        self.manifest_name = manifest_name
        self.logger = get_logger(__name__)

    async def upload(
        self,
        root_dir: Union[str, Path],
        bucket: str,
        run_token: str,
        timeout: Optional[float] = None,
    ) -> Optional[str]:
        """
        Upload the tree and return the manifest's durable location.

        Returns:
            Location of the uploaded manifest, or None if the tree had none
        """
        summary = await self.upload_tree(root_dir, bucket, run_token, timeout=timeout)
        return summary.result_uri

    async def upload_tree(
        self,
        root_dir: Union[str, Path],
        bucket: str,
        run_token: str,
        timeout: Optional[float] = None,
    ) -> UploadSummary:
        """
        Upload every regular file below ``root_dir``.

        Args:
            root_dir: Local result directory
            bucket: Destination bucket
            run_token: Run token used as the key prefix
            timeout: Seconds before in-flight transfers are cancelled

        Returns:
            Summary with one entry per uploaded file

        Raises:
            UploadError: If the tree cannot be read or any transfer fails
            RunTimeoutError: If the timeout expired first
        """
        root = Path(root_dir)
        logger = get_logger(__name__, run_token=run_token)
        start_time = time.time()

        try:
            files = await asyncio.to_thread(lambda: list(iter_files(root)))
        except OSError as e:
            raise UploadError(f"Failed to list result directory {root}: {e}", bucket=bucket) from e

        logger.info(
            f"Uploading {len(files)} artifacts to {bucket}",
            extra={"metadata": {"root": str(root), "files": len(files)}},
        )

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [
            asyncio.ensure_future(
                self._upload_file(path, root, bucket, run_token, semaphore)
            )
            for path in files
        ]

        try:
            artifacts = await asyncio.wait_for(_gather_or_cancel(tasks), timeout)
        except asyncio.TimeoutError:
            raise RunTimeoutError(
                f"Artifact upload timed out after {timeout}s", stage="uploading"
            )

        manifest = next(
            (a for a in artifacts if a.relative_path == self.manifest_name), None
        )
        duration = time.time() - start_time

        summary = UploadSummary(
            bucket=bucket,
            run_token=run_token,
            artifacts=artifacts,
            manifest=manifest,
            duration=duration,
        )

        log_performance(
            logger,
            "artifact_upload",
            duration,
            files=len(artifacts),
            bytes=summary.total_bytes,
            manifest_found=manifest is not None,
        )

        return summary

    async def _upload_file(
        self,
        path: Path,
        root: Path,
        bucket: str,
        run_token: str,
        semaphore: asyncio.Semaphore,
    ) -> UploadedArtifact:
        relative = path.relative_to(root)
        key = build_object_key(run_token, relative, self.key_prefix)

        async with semaphore:
            try:
                body = await asyncio.to_thread(path.read_bytes)
                location = await self.store.put(bucket, key, body)
            except Exception as e:
                self.logger.error(f"Failed to upload {relative.as_posix()} to {bucket}/{key}: {e}")
                raise UploadError(
                    f"Failed to upload {relative.as_posix()}: {e}",
                    bucket=bucket,
                    key=key,
                ) from e

        self.logger.debug(f"Uploaded {key}", extra={"metadata": {"size": len(body)}})

        return UploadedArtifact(
            relative_path=relative.as_posix(),
            key=key,
            location=location,
            size=len(body),
        )


async def _gather_or_cancel(tasks: List["asyncio.Future"]) -> List[UploadedArtifact]:
    """Gather tasks; on the first failure cancel the rest before re-raising."""
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
