"""Access to stylesheets, individual images and sprite images by path.

Paths are the strings written in stylesheets and manifests, always with
forward slashes. A path starting with "/" is relative to the document root;
any other path is relative to the stylesheet that references it.
"""

from __future__ import annotations

import posixpath
from pathlib import Path
from typing import BinaryIO, Optional


class ResourceHandler:
    def open_input(self, path: str) -> BinaryIO:
        raise NotImplementedError

    def open_output(self, path: str) -> BinaryIO:
        """Opens ``path`` for writing, replacing any existing content."""
        raise NotImplementedError

    def resolve_path(self, stylesheet: str, relative: str) -> str:
        raise NotImplementedError


class FileSystemResourceHandler(ResourceHandler):
    def __init__(self, root_dir: Path = Path("."), document_root_dir: Optional[Path] = None):
        self.root_dir = Path(root_dir)
        self.document_root_dir = Path(document_root_dir) if document_root_dir is not None else None

    def _file(self, path: str) -> Path:
        file = Path(path)
        return file if file.is_absolute() else self.root_dir / file

    def open_input(self, path: str) -> BinaryIO:
        return self._file(path).open("rb")

    def open_output(self, path: str) -> BinaryIO:
        file = self._file(path)
        file.parent.mkdir(parents=True, exist_ok=True)
        return file.open("wb")

    def resolve_path(self, stylesheet: str, relative: str) -> str:
        if relative.startswith("/"):
            if self.document_root_dir is None:
                raise ValueError(f"Absolute path {relative} used, but no document root is set")
            return (self.document_root_dir / relative.lstrip("/")).as_posix()
        return posixpath.normpath(posixpath.join(posixpath.dirname(stylesheet), relative))


def change_root(path: str, old_root: str, new_root: str) -> str:
    """Moves ``path`` from under ``old_root`` to the same place under ``new_root``.

    Paths outside ``old_root`` are returned unchanged.
    """
    old = posixpath.normpath(old_root)
    norm = posixpath.normpath(path)
    if old in ("", "."):
        if norm.startswith("../") or norm == ".." or posixpath.isabs(norm):
            return path
        return posixpath.join(new_root, norm)
    if norm == old:
        return new_root
    if norm.startswith(old.rstrip("/") + "/"):
        return posixpath.join(new_root, norm[len(old.rstrip("/")) + 1:])
    return path
