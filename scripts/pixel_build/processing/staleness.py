"""
Decides which sprite sheets need rebuilding.

Full builds compare modification times of a sheet's sources with its
artifacts. Watch mode classifies filesystem events by their depth below
the sprite root instead. Both share the same notion of what a sprite
source is, so editor temp files never trigger work in either mode.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..context import WatchEvent
from .atlas import LAYERS
from .sources import is_sprite_source


REBUILD = "rebuild"
REMOVE = "remove"


@dataclass(frozen=True)
class SheetChange:
    """What has to happen to one sheet."""
    sheet: str
    action: str  # REBUILD or REMOVE


class StalenessChecker:
    """Maps sheet directories and filesystem events to sheet changes."""

    def __init__(self, sprites_dir: Path, output_dir: Path, src_dir: Path):
        self.sprites_dir = Path(sprites_dir).resolve()
        self.output_dir = Path(output_dir)
        self.src_dir = Path(src_dir)

    def image_paths(self, sheet: str) -> List[Path]:
        return [self.output_dir / f"{sheet}-{layer}.png" for layer in LAYERS]

    def metadata_paths(self, sheet: str) -> List[Path]:
        return [self.src_dir / f"{sheet}.ts", self.src_dir / f"{sheet}.json"]

    def artifact_paths(self, sheet: str) -> List[Path]:
        return self.image_paths(sheet) + self.metadata_paths(sheet)

    def sheet_names(self) -> List[str]:
        """Every sheet directory under the sprite root, sorted."""
        if not self.sprites_dir.is_dir():
            return []
        return sorted(p.name for p in self.sprites_dir.iterdir() if p.is_dir())

    def source_files(self, sheet: str) -> List[Path]:
        """Recognized sprite sources of a sheet in discovery order."""
        sheet_dir = self.sprites_dir / sheet
        return sorted(
            (p for p in sheet_dir.iterdir() if p.is_file() and is_sprite_source(p)),
            key=lambda p: p.name
        )

    def source_mtime(self, sheet: str) -> float:
        """Latest modification time of a sheet directory and its sources."""
        sheet_dir = self.sprites_dir / sheet
        mtimes = [sheet_dir.stat().st_mtime]
        mtimes.extend(p.stat().st_mtime for p in self.source_files(sheet))
        return max(mtimes)

    def is_stale(self, sheet: str, clean: bool = False) -> bool:
        """True when any artifact is missing or older than the sheet's sources."""
        if clean:
            return True

        artifact_mtimes = []
        for path in self.artifact_paths(sheet):
            try:
                artifact_mtimes.append(path.stat().st_mtime)
            except FileNotFoundError:
                return True
        return self.source_mtime(sheet) > min(artifact_mtimes)

    def stale_sheets(self, clean: bool = False) -> List[SheetChange]:
        """Sheets a full build must rebuild."""
        return [
            SheetChange(sheet, REBUILD)
            for sheet in self.sheet_names()
            if self.is_stale(sheet, clean)
        ]

    def classify(self, event: WatchEvent) -> Optional[SheetChange]:
        """
        Classify one watch event.

        A change directly under the sprite root concerns a whole sheet:
        creating or updating it rebuilds it, deleting it removes its
        artifacts. Deeper changes only count for recognized sprite sources
        and rebuild the owning sheet. A sheet whose directory is gone is
        removed whatever the event, which covers renamed or moved sheets.
        """
        path = Path(event.path)
        if not path.is_absolute():
            path = self.sprites_dir / path
        try:
            components = path.relative_to(self.sprites_dir).parts
        except ValueError:
            return None
        if not components:
            return None

        sheet = components[0]
        if len(components) == 1:
            if event.type == 'delete':
                return SheetChange(sheet, REMOVE)
            if path.is_file():
                return None
        elif not is_sprite_source(path):
            return None

        if not (self.sprites_dir / sheet).is_dir():
            return SheetChange(sheet, REMOVE)
        return SheetChange(sheet, REBUILD)

    def coalesce(self, events: Iterable[WatchEvent]) -> List[SheetChange]:
        """
        One change per distinct sheet, in order of first appearance.

        The latest event for a sheet decides whether it is rebuilt or removed.
        """
        changes: Dict[str, SheetChange] = {}
        for event in events:
            change = self.classify(event)
            if change is not None:
                changes[change.sheet] = change
        return list(changes.values())
