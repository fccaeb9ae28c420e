"""
Object Storage Driver Interfaces

Backends expose a driver (``OSDriver``) that opens sessions
(``OSSession``). Sessions save, read, list and delete named blobs.
Operations a backend cannot perform raise NotSupportedError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from w3store.errors.storage import NotSupportedError
from w3store.storage.types import SaveDataOutput


class FileProperties(BaseModel):
    """Optional properties attached to saved data."""

    model_config = ConfigDict(frozen=True)

    metadata: Dict[str, str] = Field(default_factory=dict)
    cache_control: Optional[str] = None
    content_type: Optional[str] = None


class FileInfo(BaseModel):
    """Listing entry."""

    model_config = ConfigDict(frozen=True)

    name: str
    etag: Optional[str] = None
    size: Optional[int] = None


class OSDriver(ABC):
    """Object storage backend."""

    name = "base"

    @abstractmethod
    def new_session(self, path: str = "") -> OSSession:
        ...

    @abstractmethod
    def description(self) -> str:
        ...

    def uri_schemes(self) -> List[str]:
        return []

    async def publish(self, *, timeout_ms: Optional[int] = None) -> str:
        raise NotSupportedError("publish", driver=self.name)


class OSSession(ABC):
    """Session bound to one driver and one path prefix."""

    @property
    @abstractmethod
    def os(self) -> OSDriver:
        ...

    @abstractmethod
    async def save_data(
        self,
        name: str,
        data: object,
        fields: Optional[FileProperties] = None,
        timeout_ms: Optional[int] = None,
    ) -> SaveDataOutput:
        ...

    def end_session(self) -> None:
        """Release per-session resources."""

    def is_external(self) -> bool:
        return False

    def is_own(self, url: str) -> bool:
        return False

    async def read_data(self, name: str) -> bytes:
        raise NotSupportedError("read_data", driver=self.os.name)

    async def read_data_range(self, name: str, byte_range: str) -> bytes:
        raise NotSupportedError("read_data_range", driver=self.os.name)

    async def list_files(self, prefix: str = "", delim: str = "/") -> List[FileInfo]:
        raise NotSupportedError("list_files", driver=self.os.name)

    async def delete_file(self, name: str) -> None:
        raise NotSupportedError("delete_file", driver=self.os.name)

    def presign(self, name: str, expire_seconds: int) -> str:
        raise NotSupportedError("presign", driver=self.os.name)
