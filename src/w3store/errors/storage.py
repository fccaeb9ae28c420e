"""
Storage-related exceptions for w3store.

These exceptions are raised while building content-addressed trees,
packing archives and talking to the remote archive service.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from w3store.errors.base import W3StoreError


class StorageError(W3StoreError):
    """
    Base exception for storage operations.

    Example:
        >>> raise StorageError("Block store unavailable")
    """

    def __init__(
        self,
        message: str,
        *,
        cid: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if cid:
            details["cid"] = cid

        super().__init__(
            message,
            code="STORAGE_ERROR",
            details=details,
        )
        self.cid = cid


class InvalidIdentifierError(StorageError):
    """
    Raised when a content identifier string or byte sequence is malformed.

    Example:
        >>> raise InvalidIdentifierError("not-a-cid", reason="unknown multibase prefix")
    """

    def __init__(
        self,
        value: str,
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["value"] = value
        if reason:
            details["reason"] = reason

        message = f"Invalid content identifier: {value}"
        if reason:
            message += f" ({reason})"

        super().__init__(message, details=details)
        self.code = "INVALID_IDENTIFIER"
        self.value = value
        self.reason = reason


class ContentNotFoundError(StorageError):
    """
    Raised when content cannot be found in a store.

    Example:
        >>> raise ContentNotFoundError("bafybeie5...")
    """

    def __init__(
        self,
        cid: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            f"Content not found: {cid}",
            cid=cid,
            details=details,
        )
        self.code = "CONTENT_NOT_FOUND"


class StoreFailureError(StorageError):
    """
    Raised when a block store or the remote archive service fails.

    Example:
        >>> raise StoreFailureError("Unknown archive id", cid="bagbaiera...")
    """

    def __init__(
        self,
        message: str = "Store operation failed",
        *,
        cid: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, cid=cid, details=details)
        self.code = "STORE_FAILURE"


class RemoteStoreError(StoreFailureError):
    """
    Raised when an external storage command exits unsuccessfully.

    Example:
        >>> raise RemoteStoreError(
        ...     "executing 'livepeer-w3 can store add' failed",
        ...     command=["livepeer-w3", "can", "store", "add", "/tmp/x.car"],
        ...     output="Error: space not found",
        ...     returncode=1,
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        command: Optional[List[str]] = None,
        output: Optional[str] = None,
        returncode: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if command:
            details["command"] = " ".join(command[:4])
        if output is not None:
            details["output"] = output
        if returncode is not None:
            details["returncode"] = returncode

        if output:
            message += f", command output: {output.strip()}"

        super().__init__(message, details=details)
        self.code = "REMOTE_STORE_ERROR"
        self.command = command
        self.output = output
        self.returncode = returncode


class StoreTimeoutError(StorageError):
    """
    Raised when a store, pack or publish operation exceeds its deadline.

    Example:
        >>> raise StoreTimeoutError(300000, operation="save_file")
    """

    def __init__(
        self,
        timeout_ms: int,
        *,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["timeout_ms"] = timeout_ms
        if operation:
            details["operation"] = operation

        message = f"Operation timed out after {timeout_ms}ms"
        if operation:
            message = f"{operation} timed out after {timeout_ms}ms"

        super().__init__(message, details=details)
        self.code = "STORE_TIMEOUT"
        self.timeout_ms = timeout_ms
        self.operation = operation


class SessionFinalizingError(StorageError):
    """
    Raised when a file is added to a publish session that is being
    (or has been) finalized.

    Example:
        >>> raise SessionFinalizingError("campaign-42")
    """

    def __init__(
        self,
        campaign_id: str,
        *,
        published: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["campaign_id"] = campaign_id
        details["published"] = published

        if published:
            message = f"Session {campaign_id} has already been published"
        else:
            message = f"Session {campaign_id} is being finalized"

        super().__init__(message, details=details)
        self.code = "SESSION_FINALIZING"
        self.campaign_id = campaign_id
        self.published = published


class ArchiveFormatError(StorageError):
    """
    Raised when an archive or an encoded node cannot be decoded.

    Example:
        >>> raise ArchiveFormatError("Truncated block section")
    """

    def __init__(
        self,
        message: str,
        *,
        offset: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if offset is not None:
            details["offset"] = offset

        super().__init__(message, details=details)
        self.code = "ARCHIVE_FORMAT_ERROR"
        self.offset = offset


class CredentialsError(StorageError):
    """
    Raised when credentials required by a storage backend are missing
    or malformed.

    Example:
        >>> raise CredentialsError("UCAN proof not found")
    """

    def __init__(
        self,
        message: str = "Storage credentials missing",
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.code = "CREDENTIALS_ERROR"


class NotSupportedError(StorageError):
    """
    Raised when a driver does not support the requested operation.

    Example:
        >>> raise NotSupportedError("read_data", driver="w3s")
    """

    def __init__(
        self,
        operation: str,
        *,
        driver: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["operation"] = operation
        if driver:
            details["driver"] = driver

        message = f"Operation not supported: {operation}"
        if driver:
            message += f" (driver: {driver})"

        super().__init__(message, details=details)
        self.code = "NOT_SUPPORTED"
        self.operation = operation
        self.driver = driver


# ============================================================================
# Gateway Errors
# ============================================================================


class GatewayDownloadError(StorageError):
    """
    Raised when downloading published content from a gateway fails.

    Example:
        >>> raise GatewayDownloadError("Download failed: HTTP 502")
    """

    def __init__(
        self,
        message: str = "Gateway download failed",
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(message, details=details)
        self.code = "GATEWAY_DOWNLOAD_ERROR"
        self.url = url
        self.status_code = status_code


class FileSizeLimitError(StorageError):
    """
    Raised when content size exceeds configured limits.

    Example:
        >>> raise FileSizeLimitError("Content size 100MB exceeds limit 50MB")
    """

    def __init__(
        self,
        message: str,
        *,
        file_size: Optional[int] = None,
        max_size: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if file_size is not None:
            details["file_size_bytes"] = file_size
        if max_size is not None:
            details["max_size_bytes"] = max_size

        super().__init__(message, details=details)
        self.code = "FILE_SIZE_LIMIT"
        self.file_size = file_size
        self.max_size = max_size
