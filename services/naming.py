"""Collision-free entry names for bulk archives."""
from __future__ import annotations

import os

from services.storage import sanitize_filename


class NameAllocator:
    """Hands out unique names, suffixing repeats as ``name_2.ext``, ``name_3.ext``...

    ``used`` maps every reserved name to the last suffix number handed out
    for it. Results only depend on the order of :meth:`allocate` calls.
    """

    def __init__(self, used: dict[str, int] | None = None):
        self.used: dict[str, int] = dict(used or {})

    def allocate(self, candidate: str) -> str:
        if candidate not in self.used:
            self.used[candidate] = 1
            return candidate
        stem, ext = os.path.splitext(candidate)
        count = self.used[candidate]
        while True:
            count += 1
            name = f"{stem}_{count}{ext}"
            if name not in self.used:
                break
        self.used[candidate] = count
        self.used[name] = 1
        return name

    def __contains__(self, name: str) -> bool:
        return name in self.used


def archive_base_name(student, extension: str = "") -> str:
    """``{student id}{name}{ext}`` with each part made filesystem safe."""
    identifier = sanitize_filename(student.student_id or "", fallback=str(student.id))
    name = sanitize_filename(student.name or "", fallback="")
    ext = sanitize_filename(extension, fallback="") if extension else ""
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return f"{identifier}{name}{ext}"
