"""
Built-in build plugins.
"""

from ..plugin import PluginRegistry
from .sprite import SpritePlugin


def default_registry() -> PluginRegistry:
    """Registry holding every built-in plugin."""
    registry = PluginRegistry()
    registry.register_plugin_class(SpritePlugin)
    return registry


__all__ = [
    "SpritePlugin",
    "default_registry",
]
