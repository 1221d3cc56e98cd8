"""
Pixel Build: asset build pipeline for a 2D tile game.

Converts author-facing sprite sources (static strips and layered Aseprite
documents) into runtime atlases with synthesized normal maps, through a
plugin architecture supporting full builds, clean builds and a live
file-watch mode.
"""

__version__ = "0.1.0"
__author__ = "Pixel Build Development Team"

from .config import BuildConfig
from .context import BuildContext, BuildLogger, WatchEvent
from .plugin import BuildPlugin, PluginRegistry
from .pipeline import PluginOrchestrator, PluginPhase
from .watch import WatchRouter
from .plugins.sprite import SpritePlugin

__all__ = [
    "BuildConfig",
    "BuildContext",
    "BuildLogger",
    "WatchEvent",
    "BuildPlugin",
    "PluginRegistry",
    "PluginOrchestrator",
    "PluginPhase",
    "WatchRouter",
    "SpritePlugin",
]
