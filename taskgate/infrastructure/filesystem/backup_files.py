"""Reads and writes backup documents on the local disk.

Uses ``pathlib`` for paths and ``aiofiles`` for async I/O.
"""

import logging
from pathlib import Path
from typing import Union

import aiofiles

logger = logging.getLogger(__name__)


class BackupFileStore:
    """Local-disk persistence for exported backup documents."""

    def __init__(self):
        logger.info("BackupFileStore initialized.")

    async def read_backup(self, file_path: Union[str, Path]) -> str:
        """Reads a backup document.

        Raises:
            FileNotFoundError: If the file does not exist.
            PermissionError: If the file cannot be read.
        """
        path = Path(file_path)
        logger.debug(f"Attempting to read backup file: {path}")
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        try:
            async with aiofiles.open(path, mode='r', encoding='utf-8') as f:
                content = await f.read()
        except PermissionError as e:
            logger.error(f"Permission denied reading file: {path}")
            raise PermissionError(f"Permission denied: {file_path}") from e
        logger.debug(f"Read {len(content)} characters from {path}")
        return content

    async def write_backup(self, file_path: Union[str, Path], content: str) -> Path:
        """Writes a backup document, creating parent directories as needed."""
        path = Path(file_path)
        logger.debug(f"Attempting to write {len(content)} characters to file: {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, mode='w', encoding='utf-8') as f:
                await f.write(content)
        except PermissionError as e:
            logger.error(f"Permission denied writing file: {path}")
            raise PermissionError(f"Permission denied: {file_path}") from e
        logger.info(f"Wrote backup to {path}")
        return path
