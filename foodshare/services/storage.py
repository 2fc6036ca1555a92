# foodshare/services/storage.py
import logging
import re
import time
from pathlib import Path
from typing import List, Sequence, Tuple

import anyio

from foodshare.core.errors import PartialUploadError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(filename: str) -> str:
    name = _UNSAFE.sub("_", (filename or "").strip()).strip("._")
    return name or "image"


class LocalObjectStore:
    """Object store on the local filesystem, served back under ``/uploads``."""

    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _write(self, data: bytes, path: str) -> None:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"refusing to write outside upload root: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload(self, data: bytes, path: str) -> str:
        if not data:
            raise ValueError("empty upload")
        await anyio.to_thread.run_sync(self._write, data, path)
        return f"{self.base_url}/uploads/{path}"

    async def upload_many(self, owner_id: str, files: Sequence[Tuple[str, bytes]],
                          prefix: str = "donation-images") -> List[str]:
        """
        Upload each file independently. Raises PartialUploadError when any
        of them failed; the error still carries the URLs that succeeded.
        """
        urls: List[str] = []
        failed: List[str] = []
        for i, (filename, data) in enumerate(files):
            path = f"{prefix}/{owner_id}/{int(time.time() * 1000)}_{i}_{safe_name(filename)}"
            try:
                urls.append(await self.upload(data, path))
            except (OSError, ValueError):
                logger.warning("upload of %s failed", filename, exc_info=True)
                failed.append(filename)
        if failed:
            raise PartialUploadError(urls, failed)
        return urls
