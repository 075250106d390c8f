"""Filesystem helpers shared by the stores.

Every write into the game tree goes through a temporary sibling and
``os.replace`` so readers never see a partially written file.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    """Create ``path`` (and parents) if needed; raises OSError if it cannot exist."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    if not path.is_dir():
        raise NotADirectoryError(f"{path} exists and is not a directory")
    return path


def temp_sibling(destination: Path) -> Path:
    """Uniquely named temporary file next to ``destination``."""
    return destination.with_name(f"{destination.name}.{uuid.uuid4().hex}.tmp")


def remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def write_atomic(destination: Path, data: bytes) -> Path:
    ensure_dir(destination.parent)
    tmp = temp_sibling(destination)
    try:
        tmp.write_bytes(data)
        os.replace(tmp, destination)
    finally:
        remove_quietly(tmp)
    return destination


def copy_atomic(source: Path, destination: Path) -> Path:
    ensure_dir(destination.parent)
    tmp = temp_sibling(destination)
    try:
        shutil.copyfile(source, tmp)
        os.replace(tmp, destination)
    finally:
        remove_quietly(tmp)
    return destination


def is_within(root: Path, path: Path) -> bool:
    try:
        path.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False
