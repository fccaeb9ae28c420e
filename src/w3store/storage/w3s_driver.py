"""
Web3 Storage Driver

Object storage driver publishing to web3.storage. Every driver instance
belongs to a publish campaign ("pub id"); files saved through any of
its sessions land in the campaign's shared directory tree, and
``publish()`` binds the tree and returns ``ipfs://<root>``.

URL format: ``w3s://<ucan proof>@<pub id>/<dir path>``; the proof is
base64url encoded and the pub id must stay the same until publish.
"""

from __future__ import annotations

import os
from typing import List, Optional
from urllib.parse import urlsplit

from w3store.errors.storage import CredentialsError, NotSupportedError
from w3store.storage.base import FileProperties, OSDriver, OSSession
from w3store.storage.packer import ArchivePacker, IpfsCarPacker
from w3store.storage.publisher import Publisher
from w3store.storage.remote import PRINCIPAL_KEY_ENV, W3CliClient
from w3store.storage.session import SessionRegistry
from w3store.storage.types import SaveDataOutput, W3CliConfig

W3S_SCHEME = "w3s"


class W3sDriver(OSDriver):
    """
    Driver for one publish campaign at one directory path.

    Example:
        ```python
        registry = SessionRegistry()
        driver = parse_os_url("w3s://<proof>@stream-42/video/hls", registry)
        session = driver.new_session()
        await session.save_data("seg0.ts", segment_bytes)
        locator = await parse_os_url("w3s://<proof>@stream-42", registry).publish()
        ```
    """

    name = "w3s"

    def __init__(self, publisher: Publisher, dir_path: str, pub_id: str) -> None:
        self._publisher = publisher
        self.dir_path = dir_path
        self.pub_id = pub_id

    @property
    def publisher(self) -> Publisher:
        return self._publisher

    def new_session(self, path: str = "") -> W3sSession:
        if path:
            raise NotSupportedError("named session", driver=self.name)
        return W3sSession(self)

    def description(self) -> str:
        return "Web3 Storage driver."

    def uri_schemes(self) -> List[str]:
        return [W3S_SCHEME]

    async def publish(self, *, timeout_ms: Optional[int] = None) -> str:
        return await self._publisher.finalize(self.pub_id, timeout_ms)


class W3sSession(OSSession):
    """Write-only session; reads go through a gateway after publish."""

    def __init__(self, driver: W3sDriver) -> None:
        self._driver = driver

    @property
    def os(self) -> W3sDriver:
        return self._driver

    async def save_data(
        self,
        name: str,
        data: object,
        fields: Optional[FileProperties] = None,
        timeout_ms: Optional[int] = None,
    ) -> SaveDataOutput:
        """
        Save a file into the campaign tree.

        Returns:
            SaveDataOutput whose url is the file's content id
        """
        cid = await self._driver.publisher.save_file(
            self._driver.pub_id,
            self._driver.dir_path,
            name,
            data,
            timeout_ms,
        )
        return SaveDataOutput(url=cid)


def parse_os_url(
    url: str,
    registry: SessionRegistry,
    *,
    packer: Optional[ArchivePacker] = None,
) -> W3sDriver:
    """
    Build a driver from an object storage URL.

    Args:
        url: ``w3s://<proof>@<pub id>/<path>``
        registry: Session registry shared by every driver of the process
        packer: Archive packer (defaults to ``ipfs-car``)

    Returns:
        Configured W3sDriver

    Raises:
        CredentialsError: If W3_PRINCIPAL_KEY is not set or the proof is missing
        NotSupportedError: For any other scheme
    """
    parts = urlsplit(url)
    if parts.scheme != W3S_SCHEME:
        raise NotSupportedError(f"unrecognized OS scheme: {parts.scheme or '(none)'}")

    principal_key = os.environ.get(PRINCIPAL_KEY_ENV)
    if principal_key is None:
        raise CredentialsError(f"env variable '{PRINCIPAL_KEY_ENV}' is not defined")

    proof = parts.username or ""
    if not proof:
        raise CredentialsError("UCAN proof not found")

    # Keep the pub id's case; urlsplit().hostname lower-cases it
    pub_id = parts.netloc.rpartition("@")[2].split(":", 1)[0]
    if not pub_id:
        raise NotSupportedError("w3s URL without pub id")

    remote = W3CliClient(W3CliConfig(ucan_proof=proof, principal_key=principal_key))
    publisher = Publisher(packer or IpfsCarPacker(), remote, registry=registry)
    return W3sDriver(publisher, parts.path, pub_id)
