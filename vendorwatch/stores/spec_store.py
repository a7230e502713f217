import asyncio
import json
import logging
import os
import re
from pathlib import Path

import aiofiles
import aiofiles.os

from vendorwatch.schema.spec import VendorSpec
from vendorwatch.utils.settings import settings

logger = logging.getLogger(__name__)


class SpecStore:
    """One JSON document per vendor id.

    Access to a key is serialized with an ``asyncio.Lock`` and writes go
    through a temp file plus ``os.replace`` so readers never see a partial
    document.
    """

    def __init__(self, directory: Path | str | None = None):
        self.directory = Path(directory or settings.SPEC_STORE_DIRECTORY)
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, vendor_id: str) -> asyncio.Lock:
        if vendor_id not in self._locks:
            self._locks[vendor_id] = asyncio.Lock()
        return self._locks[vendor_id]

    def path_for(self, vendor_id: str) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", vendor_id)
        return self.directory / f"{safe_id}.json"

    async def get(self, vendor_id: str) -> VendorSpec | None:
        path = self.path_for(vendor_id)
        async with self._lock(vendor_id):
            if not await aiofiles.os.path.exists(path):
                return None
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                raw = await f.read()
        return VendorSpec.model_validate_json(raw)

    async def put(self, vendor_id: str, spec: VendorSpec) -> None:
        path = self.path_for(vendor_id)
        tmp_path = path.with_suffix(f".{os.getpid()}.tmp")
        async with self._lock(vendor_id):
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
            try:
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(json.dumps(spec.model_dump(mode="json"), indent=4))
                await aiofiles.os.replace(tmp_path, path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise
        logger.info(
            f"Stored spec version {spec.version} for {vendor_id} at {path}"
        )
