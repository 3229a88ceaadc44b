"""Production sinks for finished artifacts."""

from __future__ import annotations

from pathlib import Path

from backforge.utils import write_text


class FileSystemSink:
    """Writes artifacts beneath a project root.

    Relative paths resolve against *root*; absolute paths are rejected
    unless they fall inside it.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, path: str | Path) -> Path:
        target = Path(path)
        if not target.is_absolute():
            target = self.root / target
        target = target.resolve()
        if target != self.root and self.root not in target.parents:
            raise ValueError(f"Refusing to write outside project root: {target}")
        return target

    async def persist(self, path: str | Path, source_text: str) -> None:
        await write_text(self.resolve(path), source_text)
