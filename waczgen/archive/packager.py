"""Scratch workspace management and final ZIP assembly."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
from pathlib import Path
import re
import shutil
import tempfile
from typing import Iterator
import zipfile

from ..constants import ARCHIVE_SUBDIRS
from ..errors import ArchiveBuildError
from ..types import utc_now

LOGGER = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]")


def archive_filename(title: str, request_id: str, moment: datetime | None = None) -> str:
    """Return `wacz_<sanitized-title>_<YYYY-mm-dd_HH-MM-SS>_<id>.wacz`."""

    stamp = (moment or utc_now()).strftime("%Y-%m-%d_%H-%M-%S")
    safe_title = _UNSAFE_FILENAME_CHARS_RE.sub("_", title)
    return f"wacz_{safe_title}_{stamp}_{request_id}.wacz"


class ZipPackager:
    """Own the per-build temp directory and zip it into a `.wacz` file."""

    def __init__(self, output_dir: str | Path, temp_root: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.temp_root = Path(temp_root)

    @staticmethod
    def workspace_prefix(request_id: str) -> str:
        return f"wacz_{request_id}_"

    @contextmanager
    def workspace(self, request_id: str) -> Iterator[Path]:
        """Yield a fresh directory skeleton unique to this build; removed on exit."""

        try:
            self.temp_root.mkdir(parents=True, exist_ok=True)
            root = Path(
                tempfile.mkdtemp(prefix=self.workspace_prefix(request_id), dir=self.temp_root)
            )
        except OSError as exc:
            raise ArchiveBuildError(
                f"Cannot create workspace under {self.temp_root}: {exc}"
            ) from exc

        try:
            for subdir in ARCHIVE_SUBDIRS:
                (root / subdir).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            shutil.rmtree(root, ignore_errors=True)
            raise ArchiveBuildError(f"Cannot create workspace {root}: {exc}") from exc

        try:
            yield root
        finally:
            shutil.rmtree(root, ignore_errors=True)
            LOGGER.debug("Removed workspace %s", root)

    def package(
        self,
        root: str | Path,
        *,
        title: str,
        request_id: str,
        moment: datetime | None = None,
    ) -> Path:
        """Zip everything under `root`; a partial file is removed on failure."""

        root_path = Path(root)
        target = self.output_dir / archive_filename(title, request_id, moment)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(target, "w") as archive:
                for path in sorted(root_path.rglob("*")):
                    if not path.is_file():
                        continue
                    arcname = path.relative_to(root_path).as_posix()
                    # Already-compressed members are stored as-is.
                    compression = (
                        zipfile.ZIP_STORED if path.suffix == ".gz" else zipfile.ZIP_DEFLATED
                    )
                    archive.write(path, arcname, compress_type=compression)
        except (OSError, zipfile.BadZipFile) as exc:
            if target.is_file():
                target.unlink()
            raise ArchiveBuildError(f"Failed to create archive {target}: {exc}") from exc

        LOGGER.info("Created %s (%d bytes)", target, target.stat().st_size)
        return target


__all__ = ["ZipPackager", "archive_filename"]
