"""
w3store - content-addressed object storage publishing.

Builds per-campaign IPFS directory trees incrementally as files arrive,
archives them as CAR v1 files and publishes them to web3.storage.

Modules:
- `storage`: publish pipeline, drivers, archive and content-id codecs
- `errors`: Exception hierarchy
- `utils`: Logging and subprocess helpers
"""

__version__ = "0.1.0"

from w3store.errors import (
    ContentNotFoundError,
    InvalidIdentifierError,
    SessionFinalizingError,
    StoreFailureError,
    StoreTimeoutError,
    W3StoreError,
)
from w3store.storage import (
    ContentId,
    GatewayClient,
    InMemoryRemoteStore,
    InProcessPacker,
    IpfsCarPacker,
    PublishHandle,
    Publisher,
    SessionRegistry,
    W3CliClient,
    W3sDriver,
    parse_os_url,
)

__all__ = [
    "__version__",
    # Pipeline
    "Publisher",
    "PublishHandle",
    "SessionRegistry",
    "InProcessPacker",
    "IpfsCarPacker",
    "W3CliClient",
    "InMemoryRemoteStore",
    "GatewayClient",
    "W3sDriver",
    "parse_os_url",
    "ContentId",
    # Errors
    "W3StoreError",
    "InvalidIdentifierError",
    "ContentNotFoundError",
    "StoreFailureError",
    "StoreTimeoutError",
    "SessionFinalizingError",
]
