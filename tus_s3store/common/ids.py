from __future__ import annotations

import re
import uuid
from typing import Protocol

_HEX_ID = re.compile(r"^[0-9a-f]{32}$")


class FileIdProvider(Protocol):
    """Strategy that assigns ids to newly created uploads."""

    async def create_id(self, metadata: str) -> str: ...

    async def validate_id(self, file_id: str) -> bool: ...


class UuidFileIdProvider:
    """Assigns random UUID4 ids rendered as 32 lowercase hex characters."""

    async def create_id(self, metadata: str) -> str:
        return uuid.uuid4().hex

    async def validate_id(self, file_id: str) -> bool:
        return bool(_HEX_ID.match(file_id or ""))
