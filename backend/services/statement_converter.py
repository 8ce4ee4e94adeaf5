"""
Statement upload storage and placeholder conversion.

Uploaded statements are kept on the local filesystem per upload session:

    {upload_root}/{session_id}/pdf/{name}
    {upload_root}/{session_id}/csv/{stem}.csv

Conversion is a placeholder that writes a CSV with the expected columns and
a few random rows for every uploaded PDF.
"""

import logging
import os
import random
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

CSV_HEADER = "Date,Description,Amount,Balance"
PLACEHOLDER_ROWS = 5
DOWNLOAD_CHUNK_SIZE = 64 * 1024

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class InvalidPathComponent(ValueError):
    """Raised when a session id or filename cannot be used as a path component."""

    pass


@dataclass
class StoredFile:
    """Converted file listed for an upload session."""

    name: str
    modified: datetime


def sanitize_session_id(session_id: str) -> str:
    if not session_id or not _SESSION_ID_RE.match(session_id):
        raise InvalidPathComponent(f"Invalid session id: {session_id!r}")
    return session_id


def sanitize_filename(filename: str) -> str:
    """
    Reduce a client supplied filename to a safe basename.

    Args:
        filename: Original filename

    Returns:
        Filename without directory components

    Raises:
        InvalidPathComponent: If nothing usable remains
    """
    # Remove path components
    filename = os.path.basename(filename.replace("\\", "/"))

    for char in ("\0", "\n", "\r", "\t"):
        filename = filename.replace(char, "_")

    if filename in ("", ".", ".."):
        raise InvalidPathComponent("Invalid filename")
    return filename


class StatementStore:
    """Local filesystem store for uploaded statements and converted CSVs."""

    def __init__(self, base_path: Optional[str] = None):
        """
        Initialize the store.

        Args:
            base_path: Upload root (defaults to settings.upload_root)
        """
        self.base_path = Path(base_path or settings.upload_root)

    def pdf_dir(self, session_id: str) -> Path:
        return self.base_path / sanitize_session_id(session_id) / "pdf"

    def csv_dir(self, session_id: str) -> Path:
        return self.base_path / sanitize_session_id(session_id) / "csv"

    async def save_statement(self, session_id: str, filename: str, data: bytes) -> Path:
        """
        Save an uploaded PDF and write its placeholder CSV.

        Returns:
            Path to the CSV written for the statement
        """
        safe_name = sanitize_filename(filename)
        pdf_dir = self.pdf_dir(session_id)
        pdf_dir.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(pdf_dir / safe_name, "wb") as f:
            await f.write(data)
        logger.info("Saved statement %s for upload session %s", safe_name, session_id)

        return await self.convert(session_id, safe_name)

    async def convert(self, session_id: str, pdf_name: str) -> Path:
        """Write the placeholder CSV for a saved PDF."""
        csv_dir = self.csv_dir(session_id)
        csv_dir.mkdir(parents=True, exist_ok=True)
        csv_path = csv_dir / f"{Path(pdf_name).stem}.csv"

        async with aiofiles.open(csv_path, "w", encoding="utf-8", newline="") as f:
            await f.write(render_placeholder_csv())
        logger.info("Wrote %s for upload session %s", csv_path.name, session_id)
        return csv_path

    def list_converted(self, session_id: str) -> list[StoredFile]:
        """
        List the converted CSVs for an upload session.

        Raises:
            FileNotFoundError: If the session has no converted files directory
        """
        csv_dir = self.csv_dir(session_id)
        files = []
        for entry in sorted(csv_dir.iterdir()):
            if not entry.is_file():
                continue
            modified = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
            files.append(StoredFile(name=entry.name, modified=modified))
        return files

    def converted_path(self, session_id: str, filename: str) -> Optional[Path]:
        """Return the path of a converted CSV, or None if it does not exist."""
        path = self.csv_dir(session_id) / sanitize_filename(filename)
        if not path.is_file():
            return None
        return path


def render_placeholder_csv(rows: int = PLACEHOLDER_ROWS, start: Optional[date] = None) -> str:
    """Build placeholder statement CSV content with random amounts."""
    start = start or date.today()
    balance = round(random.uniform(1000, 5000), 2)
    lines = [CSV_HEADER]
    for index in range(rows):
        amount = round(random.uniform(-500, 500), 2)
        balance = round(balance + amount, 2)
        day = start - timedelta(days=rows - index)
        lines.append(f"{day.isoformat()},Transaction {index + 1},{amount:.2f},{balance:.2f}")
    return "\n".join(lines) + "\n"


async def iter_file(path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Stream a file's bytes in chunks."""
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk
