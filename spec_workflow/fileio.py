"""Raw UTF-8 file access shared by every writer.

Writes go through a temporary sibling file and ``os.replace`` so that a
reader in another process sees either the old or the new content, never a
partial flush.
"""

import secrets
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiofiles.os


async def read_text(path: Union[str, Path]) -> Optional[str]:
    """Read a UTF-8 text file.

    Returns:
        The file content, or None if the file does not exist.
    """
    try:
        async with aiofiles.open(path, 'r', encoding='utf-8', newline='') as f:
            return await f.read()
    except FileNotFoundError:
        return None


async def write_text_atomic(path: Union[str, Path], content: str) -> None:
    """Replace a file's content in one step, creating parent directories."""
    path = Path(path)
    await aiofiles.os.makedirs(path.parent, exist_ok=True)

    tmp_path = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
    try:
        async with aiofiles.open(tmp_path, 'w', encoding='utf-8', newline='') as f:
            await f.write(content)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise
