"""JSON file helpers shared by the loader, config manager, and plugin system."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any


def read_json_sync(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def write_json_sync(path: Path, data: Any) -> None:
    """Write JSON atomically (temp file, then rename over the target)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    tmp_path.replace(path)


async def read_json(path: Path) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, read_json_sync, path)


async def write_json(path: Path, data: Any) -> None:
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, write_json_sync, path, data)


def find_files(directory: Path, pattern: str, recursive: bool = True) -> list[Path]:
    """Files under ``directory`` whose name matches a glob ``pattern``, sorted."""
    directory = Path(directory)
    matches = directory.rglob(pattern) if recursive else directory.glob(pattern)
    return sorted(p for p in matches if p.is_file())


def read_config_sync(path: Path) -> Any:
    """Parse a config document; only JSON (or extension-less JSON) is accepted."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in ("", ".json"):
        raise ValueError(f"Unsupported config file type: {suffix}")
    return read_json_sync(path)


async def read_config(path: Path) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, read_config_sync, path)
