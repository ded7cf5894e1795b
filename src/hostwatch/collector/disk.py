"""Disk sampler - space usage of a mount point and its largest folders."""

from __future__ import annotations

import logging
import os
import sys
from typing import Sequence

from ..units import parse_size
from .base import MAX_TABLE_ROWS, DiskSnapshot, FolderInfo, run_command, to_int, usage_fields

logger = logging.getLogger(__name__)


def parse_df_output(output: str, block_size: int = 1) -> tuple[int, int, int]:
    """Return ``(total, used, free)`` from the last line of ``df`` output.

    ``df`` is asked for byte (or 1K block) units so no size suffixes need
    parsing. Raises ``ValueError`` if the output is not usable.
    """
    lines = output.strip().splitlines()
    if not lines:
        raise ValueError("empty df output")
    parts = lines[-1].split()
    if len(parts) >= 4:
        total = to_int(parts[1]) * block_size
        used = to_int(parts[2]) * block_size
        free = to_int(parts[3]) * block_size
        if total > 0:
            return total, used, free
    raise ValueError(f"Invalid df output format: {output!r}")


def parse_wmic_output(output: str) -> tuple[int, int, int]:
    total = 0
    free = 0
    for line in output.strip().splitlines():
        line = line.strip()
        if line.startswith("FreeSpace="):
            free = to_int(line.split("=", 1)[1])
        elif line.startswith("Size="):
            total = to_int(line.split("=", 1)[1])
    return total, total - free, free


def parse_du_output(output: str, root: str) -> list[FolderInfo]:
    """Parse ``du -h -d 1`` output into the largest folders under *root*.

    Percentages are each folder's share of the enumerated folders, not of
    the whole disk.
    """
    root_norm = os.path.normpath(root)
    entries: list[tuple[str, int]] = []
    for line in output.strip().splitlines():
        parts = line.split("\t", 1)
        if len(parts) != 2:
            continue
        size_token, path = parts[0].strip(), parts[1].strip()
        if os.path.normpath(path) == root_norm:
            continue
        entries.append((path, parse_size(size_token)))

    entries.sort(key=lambda e: e[1], reverse=True)
    entries = entries[:MAX_TABLE_ROWS]
    scanned = sum(size for _, size in entries)
    return [
        FolderInfo(
            path=path,
            size=size,
            percentage=round(size / scanned * 100, 2) if scanned > 0 else 0.0,
        )
        for path, size in entries
    ]


class DiskSampler:
    """Samples space usage for the first configured disk path."""

    def __init__(self, disk_paths: Sequence[str] = ("/",), platform: str | None = None) -> None:
        self._disk_paths = tuple(disk_paths) or ("/",)
        self._platform = platform or sys.platform

    @property
    def path(self) -> str:
        return self._disk_paths[0]

    def set_paths(self, disk_paths: Sequence[str]) -> None:
        self._disk_paths = tuple(disk_paths) or ("/",)

    def sample(self) -> DiskSnapshot:
        total, used, free = self.space_usage()
        return DiskSnapshot(
            path=self.path,
            **usage_fields(total, used, free),
            top_folders=tuple(self.top_folders()),
        )

    def space_usage(self) -> tuple[int, int, int]:
        try:
            if self._platform == "win32":
                output = run_command(
                    ["wmic", "logicaldisk", "where", 'caption="C:"', "get", "size,freespace", "/value"]
                )
                return parse_wmic_output(output)
            if self._platform == "darwin":
                return parse_df_output(run_command(["df", "-k", self.path]), block_size=1024)
            return parse_df_output(run_command(["df", "-B1", self.path]))
        except Exception:
            logger.warning("Reading disk usage for %s failed", self.path, exc_info=True)
            return 0, 0, 0

    def top_folders(self) -> list[FolderInfo]:
        if self._platform == "win32":
            logger.debug("Folder sizes not supported on %s", self._platform)
            return []
        try:
            # du exits non-zero on unreadable entries but still reports the rest
            output = run_command(["du", "-h", "-d", "1", self.path], check=False)
            return parse_du_output(output, self.path)
        except Exception:
            logger.warning("Listing folder sizes under %s failed", self.path, exc_info=True)
            return []
