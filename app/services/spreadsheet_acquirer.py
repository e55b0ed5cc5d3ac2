"""
app/services/spreadsheet_acquirer.py

Acquires a source spreadsheet (remote URL, local path or uploaded file) into
scratch storage. Every acquisition is a context manager: the scratch copy
is removed on exit, whatever the outcome of the run.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import BinaryIO
from urllib.parse import unquote, urlparse

import requests

from app.config import AcquisitionSettings, get_acquisition_settings, get_spreadsheet_ingestion_settings
from app.domain.errors import AcquisitionError
from app.logging_utils import log_event

SUPPORTED_EXTENSIONS = frozenset({".xlsx", ".xlsm", ".xls", ".csv"})
DEFAULT_EXTENSION = ".xlsx"

CONTENT_TYPE_EXTENSIONS: dict[str, str] = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": ".xlsm",
    "application/vnd.ms-excel": ".xls",
    "text/csv": ".csv",
    "application/csv": ".csv",
}

_COPY_CHUNK_BYTES = 1024 * 1024


@dataclass(frozen=True)
class AcquiredSpreadsheet:
    path: Path
    file_name: str
    size_bytes: int
    content_type: str | None
    source: str

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


def _base_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    return content_type.split(";", 1)[0].strip().lower() or None


def resolve_extension(*, name: str | None, content_type: str | None) -> str:
    """
    Pick the file extension from the name first, then the content type.
    """

    suffix = Path(name or "").suffix.lower()
    if suffix in SUPPORTED_EXTENSIONS:
        return suffix
    mapped = CONTENT_TYPE_EXTENSIONS.get(_base_content_type(content_type) or "")
    if mapped:
        return mapped
    return DEFAULT_EXTENSION


def _file_name_from_url(url: str) -> str:
    path = unquote(urlparse(url).path)
    return Path(path).name or "download"


class SpreadsheetAcquirer:
    """
    Fetches or copies source spreadsheets into a scratch directory.
    """

    def __init__(
        self,
        *,
        settings: AcquisitionSettings,
        scratch_dir: str | os.PathLike[str] | None = None,
        http_session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._settings = settings
        self._scratch_dir = Path(scratch_dir or tempfile.gettempdir())
        self._http = http_session or requests.Session()
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @contextmanager
    def from_url(self, url: str) -> Iterator[AcquiredSpreadsheet]:
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise AcquisitionError(f"Unsupported spreadsheet URL: {url!r}")

        try:
            response = self._http.get(
                url,
                headers={"User-Agent": self._settings.user_agent},
                timeout=self._settings.timeout_seconds,
                stream=True,
            )
        except requests.RequestException as exc:
            raise AcquisitionError(f"Failed to download spreadsheet from {url}: {exc}") from exc

        try:
            if response.status_code >= 400:
                raise AcquisitionError(
                    f"Failed to download spreadsheet from {url}: HTTP {response.status_code}"
                )
            content_type = response.headers.get("Content-Type")
            file_name = _file_name_from_url(url)
            extension = resolve_extension(name=file_name, content_type=content_type)
            try:
                path, size = self._write_scratch(response.iter_content(_COPY_CHUNK_BYTES), extension)
            except requests.RequestException as exc:
                raise AcquisitionError(f"Download interrupted for {url}: {exc}") from exc
        finally:
            response.close()

        acquired = AcquiredSpreadsheet(
            path=path,
            file_name=file_name,
            size_bytes=size,
            content_type=_base_content_type(content_type),
            source=url,
        )
        log_event(
            self._logger,
            logging.INFO,
            "spreadsheet.downloaded",
            url=url,
            size_bytes=size,
            content_type=acquired.content_type,
        )
        with self._scoped(acquired) as scoped:
            yield scoped

    @contextmanager
    def from_path(self, path: str | os.PathLike[str]) -> Iterator[AcquiredSpreadsheet]:
        source = Path(path).expanduser()
        self._check_local_root(source)
        if not source.is_file():
            raise AcquisitionError(f"Spreadsheet not found: {source}")

        extension = resolve_extension(name=source.name, content_type=None)
        try:
            with source.open("rb") as handle:
                scratch_path, size = self._write_scratch(iter(lambda: handle.read(_COPY_CHUNK_BYTES), b""), extension)
        except OSError as exc:
            raise AcquisitionError(f"Unable to read spreadsheet {source}: {exc}") from exc

        acquired = AcquiredSpreadsheet(
            path=scratch_path,
            file_name=source.name,
            size_bytes=size,
            content_type=None,
            source=str(source),
        )
        with self._scoped(acquired) as scoped:
            yield scoped

    @contextmanager
    def from_stream(
        self,
        stream: BinaryIO,
        *,
        file_name: str | None,
        content_type: str | None = None,
    ) -> Iterator[AcquiredSpreadsheet]:
        name = file_name or "upload"
        extension = resolve_extension(name=name, content_type=content_type)
        stream.seek(0)
        scratch_path, size = self._write_scratch(iter(lambda: stream.read(_COPY_CHUNK_BYTES), b""), extension)
        stream.seek(0)

        acquired = AcquiredSpreadsheet(
            path=scratch_path,
            file_name=name,
            size_bytes=size,
            content_type=_base_content_type(content_type),
            source=f"upload:{name}",
        )
        with self._scoped(acquired) as scoped:
            yield scoped

    def scratch_path(self, *, prefix: str, suffix: str) -> Path:
        """Reserve a unique scratch file path (the file is created empty)."""
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        handle, name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=self._scratch_dir)
        os.close(handle)
        return Path(name)

    def discard(self, path: Path) -> None:
        self._delete_file_quietly(path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _scoped(self, acquired: AcquiredSpreadsheet) -> Iterator[AcquiredSpreadsheet]:
        try:
            yield acquired
        finally:
            self._delete_file_quietly(acquired.path)

    def _check_local_root(self, source: Path) -> None:
        root = self._settings.allowed_local_root
        if root is None:
            return
        resolved_root = Path(root).expanduser().resolve()
        resolved = source.resolve()
        if resolved != resolved_root and resolved_root not in resolved.parents:
            raise AcquisitionError(f"Spreadsheet path is outside the allowed directory: {source}")

    def _write_scratch(self, chunks: Iterator[bytes], extension: str) -> tuple[Path, int]:
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            delete=False,
            dir=self._scratch_dir,
            prefix="spreadsheet_",
            suffix=extension,
        ) as temp_file:
            temp_path = Path(temp_file.name)
            try:
                for chunk in chunks:
                    if not chunk:
                        continue
                    temp_file.write(chunk)
                    if temp_file.tell() > self._settings.max_bytes:
                        raise AcquisitionError(
                            f"Spreadsheet exceeds the {self._settings.max_bytes} byte limit."
                        )
                size = temp_file.tell()
            except BaseException:
                temp_file.close()
                self._delete_file_quietly(temp_path)
                raise

        if size == 0:
            self._delete_file_quietly(temp_path)
            raise AcquisitionError("Spreadsheet payload is empty.")
        return temp_path, size

    def _delete_file_quietly(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            self._logger.warning("Failed to remove scratch file %s: %s", path, exc)


@lru_cache(maxsize=1)
def get_spreadsheet_acquirer() -> SpreadsheetAcquirer:
    return SpreadsheetAcquirer(
        settings=get_acquisition_settings(),
        scratch_dir=get_spreadsheet_ingestion_settings().scratch_dir,
    )
