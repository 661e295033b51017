"""Local artifact storage for screenshots and raw result dumps."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Union

from harvester.errors import PersistenceError

_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def safe_name(value: str) -> str:
    """Replace every non-alphanumeric character so *value* can be a file name."""
    return _UNSAFE.sub("_", value)


class ArtifactStore:
    """Write blobs under a root directory and hand back ``file://`` URIs.

    ``str`` payloads are stored as UTF-8.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise PersistenceError(f"Artifact path must be relative: {path!r}")
        return self._root.joinpath(*relative.parts)

    def store(self, data: Union[bytes, str], path: str, content_type: str) -> str:
        """Persist *data* at *path* (relative to the store root).

        Returns:
            A ``file://`` URI pointing at the stored artifact.

        Raises:
            PersistenceError: If the path escapes the root or the write fails.
        """
        target = self._resolve(path)
        payload = data.encode("utf-8") if isinstance(data, str) else data
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)
        except OSError as exc:
            raise PersistenceError(f"Cannot store artifact {path!r} ({content_type}): {exc}") from exc
        return target.resolve().as_uri()
