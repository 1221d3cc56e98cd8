"""
Sprite compositor plugin.

Turns every sheet directory under ``<assets>/sprites`` into four atlas
images (diffuse, emissive, normal, specular) in ``<output>/sprites`` plus
a descriptor module and a reverse index in ``<src>/sprites``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..context import BuildContext, WatchEvent
from ..plugin import BuildPlugin, Subscribe
from ..processing.atlas import LAYERS, compose_sheet, rasterize_sheet
from ..processing.metadata import MetadataGenerationError, MetadataGenerator
from ..processing.sources import SpriteError, load_source
from ..processing.staleness import REBUILD, REMOVE, StalenessChecker
from ..utils.image import ImageUtils


SPRITES_DIR = "sprites"

SHEET_UPDATED = "sheet_updated"


class SpritePlugin(BuildPlugin):
    """Builds sprite sheet atlases and their lookup metadata."""

    name = "sprite"
    depends = ()

    def __init__(self):
        self.metadata = MetadataGenerator()
        self._sheet_locks: Dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def sprites_dir(self, ctx: BuildContext) -> Path:
        return ctx.asset_root / SPRITES_DIR

    def images_dir(self, ctx: BuildContext) -> Path:
        return ctx.output_root / SPRITES_DIR

    def modules_dir(self, ctx: BuildContext) -> Path:
        return ctx.src_root / SPRITES_DIR

    def checker(self, ctx: BuildContext) -> StalenessChecker:
        return StalenessChecker(self.sprites_dir(ctx), self.images_dir(ctx), self.modules_dir(ctx))

    def init(self, ctx: BuildContext) -> bool:
        if not self.sprites_dir(ctx).is_dir():
            return False
        self.images_dir(ctx).mkdir(parents=True, exist_ok=True)
        self.modules_dir(ctx).mkdir(parents=True, exist_ok=True)
        return True

    def build(self, ctx: BuildContext) -> None:
        changes = self.checker(ctx).stale_sheets(clean=ctx.clean)
        if not changes:
            ctx.logger.log("All sprite sheets up to date")
            return

        for change in changes:
            self.process_sheet(ctx, change.sheet)

    def watch(self, ctx: BuildContext, subscribe: Subscribe) -> None:
        subscribe(self.sprites_dir(ctx), lambda events: self.process_events(ctx, events))

    def output_paths(self, ctx: BuildContext) -> List[Path]:
        return [self.images_dir(ctx), self.modules_dir(ctx)]

    def process_events(self, ctx: BuildContext, events: List[WatchEvent]) -> None:
        """
        Apply one batch of watch events.

        Each affected sheet is handled once: removed sheets lose their
        artifacts, dirty sheets are rebuilt concurrently and announced.
        """
        changes = self.checker(ctx).coalesce(events)
        rebuilds = [change.sheet for change in changes if change.action == REBUILD]

        for change in changes:
            if change.action == REMOVE:
                self.remove_sheet(ctx, change.sheet)

        if not rebuilds:
            return

        with ThreadPoolExecutor(max_workers=max(1, min(ctx.max_workers, len(rebuilds)))) as executor:
            list(executor.map(lambda sheet: self._rebuild_and_notify(ctx, sheet), rebuilds))

    def _rebuild_and_notify(self, ctx: BuildContext, sheet: str) -> None:
        descriptor = self.process_sheet(ctx, sheet)
        if descriptor is not None:
            ctx.emit({"type": SHEET_UPDATED, "sheet": descriptor})

    def _lock_for(self, sheet: str) -> threading.Lock:
        with self._locks_lock:
            return self._sheet_locks.setdefault(sheet, threading.Lock())

    def remove_sheet(self, ctx: BuildContext, sheet: str) -> None:
        """Delete every artifact of a sheet. Missing files are not an error."""
        with self._lock_for(sheet):
            self._remove_artifacts(ctx, sheet)

    def _remove_artifacts(self, ctx: BuildContext, sheet: str) -> None:
        for path in self.checker(ctx).artifact_paths(sheet):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                ctx.logger.debug(f"Could not remove {path}: {e}")
        ctx.logger.log(f"Removed sheet {sheet}")

    def process_sheet(self, ctx: BuildContext, sheet: str) -> Optional[Dict[str, Any]]:
        """
        Rebuild one sheet from scratch.

        Errors are logged and counted, and leave the sheet's previous
        artifacts in place.

        Returns:
            The written descriptor, or None if nothing was written
        """
        sheet_ctx = replace(ctx, logger=ctx.logger.child(sheet))
        with self._lock_for(sheet):
            try:
                return self._process_sheet(sheet_ctx, sheet)
            except SpriteError as e:
                source = f" ({e.source})" if e.source else ""
                sheet_ctx.logger.error(f"{e}{source}")
            except (OSError, ValueError, MetadataGenerationError) as e:
                sheet_ctx.logger.error(f"Failed to build sheet {sheet}: {e}")
        return None

    def _process_sheet(self, ctx: BuildContext, sheet: str) -> Optional[Dict[str, Any]]:
        checker = self.checker(ctx)
        if not (checker.sprites_dir / sheet).is_dir():
            self._remove_artifacts(ctx, sheet)
            return None

        sources = [load_source(path) for path in checker.source_files(sheet)]
        atlas, queue = compose_sheet(sheet, sources)

        if not atlas.sprites:
            ctx.logger.warn(f"Sheet {sheet} has no sprites, nothing written")
            return None

        images = rasterize_sheet(atlas, queue, ctx.max_workers)

        urls = {}
        for layer, path in zip(LAYERS, checker.image_paths(sheet)):
            ImageUtils.save_image(images[layer], path, ctx.compression_level)
            urls[layer] = f"{ctx.sprite_url_prefix}/{path.name}?v={ImageUtils.file_hash(path)}"

        descriptor = self.metadata.write_sheet_metadata(atlas, urls, self.modules_dir(ctx))
        ctx.logger.log(
            f"Built {sheet}: {len(atlas.sprites)} sprites, {atlas.width}x{atlas.height}"
        )
        return descriptor
