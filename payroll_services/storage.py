"""
payroll_services.storage -- Generated document file storage.

Responsibility:
    Persist finished document bytes and hand back a ``FileStorageInfo``
    pointer (provider, path, SHA-256 checksum, size). ``retrieve`` re-checks
    the checksum so a corrupted or tampered file is never served.

Architecture position:
    Services layer, I/O boundary. The status service only stores and later
    dereferences the pointer; it never inspects file bytes.

Failure modes:
    - StorageWriteError when bytes cannot be written.
    - StorageReadError when a file is missing or fails its integrity check.
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from payroll_engines.integrity import verify_file_checksum
from payroll_kernel.domain.document import FileStorageInfo, StorageProvider
from payroll_kernel.exceptions import StorageReadError, StorageWriteError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.utils.hashing import hash_bytes

logger = get_logger("services.storage")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_file_name(document_id: str, extension: str = "pdf") -> str:
    return f"{_UNSAFE_CHARS.sub('_', document_id)}.{extension}"


@runtime_checkable
class DocumentStorage(Protocol):
    def store(
        self, document_id: str, content: bytes, file_name: str | None = None
    ) -> FileStorageInfo: ...

    def retrieve(self, file_info: FileStorageInfo) -> bytes: ...


class LocalFileStorage:
    """Stores documents as files below ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def store(
        self, document_id: str, content: bytes, file_name: str | None = None
    ) -> FileStorageInfo:
        name = file_name or safe_file_name(document_id)
        path = self._root / name
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageWriteError(document_id, str(exc)) from exc

        info = FileStorageInfo(
            provider=StorageProvider.LOCAL_FILESYSTEM,
            file_path=str(path),
            file_name=name,
            checksum=hash_bytes(content),
            file_size=len(content),
        )
        logger.info("document_file_stored", extra={
            "document_id": document_id,
            "file_path": info.file_path,
            "file_size": info.file_size,
            "checksum": info.checksum,
        })
        return info

    def retrieve(self, file_info: FileStorageInfo) -> bytes:
        try:
            content = Path(file_info.file_path).read_bytes()
        except OSError as exc:
            raise StorageReadError(file_info.file_path, str(exc)) from exc
        if not verify_file_checksum(content, file_info.checksum):
            logger.error("document_file_integrity_failed", extra={
                "file_path": file_info.file_path,
                "expected_checksum": file_info.checksum,
            })
            raise StorageReadError(file_info.file_path, "File integrity check failed")
        return content


class InMemoryDocumentStorage:
    """Dict-backed storage for tests and previews."""

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def store(
        self, document_id: str, content: bytes, file_name: str | None = None
    ) -> FileStorageInfo:
        name = file_name or safe_file_name(document_id)
        path = f"memory://{name}"
        with self._lock:
            self._files[path] = bytes(content)
        return FileStorageInfo(
            provider=StorageProvider.IN_MEMORY,
            file_path=path,
            file_name=name,
            checksum=hash_bytes(content),
            file_size=len(content),
        )

    def retrieve(self, file_info: FileStorageInfo) -> bytes:
        with self._lock:
            content = self._files.get(file_info.file_path)
        if content is None:
            raise StorageReadError(file_info.file_path, "File not found")
        if not verify_file_checksum(content, file_info.checksum):
            raise StorageReadError(file_info.file_path, "File integrity check failed")
        return content

