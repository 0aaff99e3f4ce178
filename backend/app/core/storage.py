"""
Blob-Speicher für Report-Artefakte.

LocalBlobStore legt Dateien unterhalb von REPORT_STORAGE_DIR ab und
erzeugt zeitlich begrenzte Download-Links (signiertes JWT mit exp-Claim).
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol
from urllib.parse import parse_qs, urlencode, urlparse

from jose import JWTError, jwt

from app.core.config import settings
from app.core.errors import BlobStoreError

_TOKEN_TYPE = "report_download"


class BlobStore(Protocol):
    async def put(self, path: str, data: bytes, content_type: str) -> None: ...

    async def get(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    def signed_url(self, path: str, expires_in: int) -> str: ...

    async def fetch_signed(self, url: str) -> bytes: ...


class LocalBlobStore:

    def __init__(
        self,
        root: str | Path | None = None,
        base_url: str | None = None,
        secret_key: str | None = None,
    ):
        self.root = Path(root or settings.REPORT_STORAGE_DIR).resolve()
        self.base_url = base_url or settings.REPORT_DOWNLOAD_BASE_URL
        self._secret = secret_key or settings.SECRET_KEY

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise BlobStoreError(f"Pfad außerhalb des Speichers: {path}")
        return target

    async def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise BlobStoreError(f"Blob konnte nicht geschrieben werden: {path}") from e

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise BlobStoreError(f"Blob konnte nicht gelesen werden: {path}") from e

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink, True)
        except OSError as e:
            raise BlobStoreError(f"Blob konnte nicht gelöscht werden: {path}") from e

    def signed_url(self, path: str, expires_in: int) -> str:
        expire = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"path": path, "exp": expire, "type": _TOKEN_TYPE},
            self._secret,
            algorithm=settings.ALGORITHM,
        )
        return f"{self.base_url}?{urlencode({'token': token})}"

    def path_from_token(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[settings.ALGORITHM])
        except JWTError as e:
            raise BlobStoreError(f"Ungültiger Download-Link: {e}") from e
        if payload.get("type") != _TOKEN_TYPE or "path" not in payload:
            raise BlobStoreError("Ungültiger Download-Link")
        return payload["path"]

    async def fetch_signed(self, url: str) -> bytes:
        tokens = parse_qs(urlparse(url).query).get("token")
        if not tokens:
            raise BlobStoreError("Download-Link ohne Token")
        return await self.get(self.path_from_token(tokens[0]))
