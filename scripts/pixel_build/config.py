"""
Configuration management for the build pipeline.
Supports TOML and JSON configuration files with validation.
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any, Union

# Handle tomllib import for different Python versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11


ENV_PREFIX = "PIXEL_BUILD_"


@dataclass
class BuildConfig:
    """Main configuration class for the build pipeline."""

    # Roots, relative paths resolve against game_root
    game_root: str = "."
    assets_dir: str = "assets"
    src_dir: str = "client"
    output_dir: str = "www"

    # Build mode
    production: bool = False
    clean: bool = False
    plugins: List[str] = field(default_factory=list)

    # Output settings
    compression_level: int = 6
    production_compression_level: int = 9
    sprite_url_prefix: str = "/sprites"

    # Watch settings
    watch_debounce: float = 0.1
    max_workers: int = 4

    @property
    def asset_root(self) -> Path:
        return Path(self.game_root) / self.assets_dir

    @property
    def src_root(self) -> Path:
        return Path(self.game_root) / self.src_dir

    @property
    def output_root(self) -> Path:
        return Path(self.game_root) / self.output_dir

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "BuildConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            return cls._from_toml(config_path)
        elif config_path.suffix.lower() == '.json':
            return cls._from_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")

    @classmethod
    def _from_toml(cls, config_path: Path) -> "BuildConfig":
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_json(cls, config_path: Path) -> "BuildConfig":
        with open(config_path, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "BuildConfig":
        """Create configuration from a nested dictionary."""
        config_data = {}

        if 'paths' in data:
            paths = data['paths']
            config_data['game_root'] = paths.get('game_root', '.')
            config_data['assets_dir'] = paths.get('assets_dir', 'assets')
            config_data['src_dir'] = paths.get('src_dir', 'client')
            config_data['output_dir'] = paths.get('output_dir', 'www')

        if 'build' in data:
            build = data['build']
            config_data['production'] = build.get('production', False)
            config_data['clean'] = build.get('clean', False)
            config_data['plugins'] = list(build.get('plugins', []))

        if 'output' in data:
            output = data['output']
            config_data['compression_level'] = output.get('compression_level', 6)
            config_data['production_compression_level'] = output.get('production_compression_level', 9)
            config_data['sprite_url_prefix'] = output.get('sprite_url_prefix', '/sprites')

        if 'watch' in data:
            watch = data['watch']
            config_data['watch_debounce'] = watch.get('debounce', 0.1)
            config_data['max_workers'] = watch.get('max_workers', 4)

        return cls(**config_data)

    @classmethod
    def default(cls) -> "BuildConfig":
        """Create default configuration with environment variable overrides."""
        return cls._apply_env_overrides(cls())

    @classmethod
    def _apply_env_overrides(cls, config: "BuildConfig") -> "BuildConfig":
        """Apply environment variable overrides to configuration."""

        # Paths
        if os.getenv('PIXEL_BUILD_GAME_ROOT'):
            config.game_root = os.getenv('PIXEL_BUILD_GAME_ROOT', '.')

        if os.getenv('PIXEL_BUILD_ASSETS_DIR'):
            config.assets_dir = os.getenv('PIXEL_BUILD_ASSETS_DIR', 'assets')

        if os.getenv('PIXEL_BUILD_SRC_DIR'):
            config.src_dir = os.getenv('PIXEL_BUILD_SRC_DIR', 'client')

        if os.getenv('PIXEL_BUILD_OUTPUT_DIR'):
            config.output_dir = os.getenv('PIXEL_BUILD_OUTPUT_DIR', 'www')

        # Build mode
        if os.getenv('PIXEL_BUILD_PRODUCTION'):
            config.production = os.getenv('PIXEL_BUILD_PRODUCTION', 'false').lower() == 'true'

        if os.getenv('PIXEL_BUILD_PLUGINS'):
            config.plugins = [p.strip() for p in os.getenv('PIXEL_BUILD_PLUGINS', '').split(',') if p.strip()]

        # Output settings
        if os.getenv('PIXEL_BUILD_COMPRESSION_LEVEL'):
            config.compression_level = int(os.getenv('PIXEL_BUILD_COMPRESSION_LEVEL', '6'))

        if os.getenv('PIXEL_BUILD_SPRITE_URL_PREFIX'):
            config.sprite_url_prefix = os.getenv('PIXEL_BUILD_SPRITE_URL_PREFIX', '/sprites')

        # Watch settings
        if os.getenv('PIXEL_BUILD_WATCH_DEBOUNCE'):
            config.watch_debounce = float(os.getenv('PIXEL_BUILD_WATCH_DEBOUNCE', '0.1'))

        if os.getenv('PIXEL_BUILD_MAX_WORKERS'):
            config.max_workers = int(os.getenv('PIXEL_BUILD_MAX_WORKERS', '4'))

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        for level_name in ('compression_level', 'production_compression_level'):
            if not 0 <= getattr(self, level_name) <= 9:
                errors.append(f"{level_name} must be between 0 and 9")

        if self.watch_debounce < 0:
            errors.append("watch_debounce cannot be negative")

        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")

        if not self.sprite_url_prefix.startswith('/'):
            errors.append("sprite_url_prefix must start with '/'")

        if Path(self.output_dir) == Path(self.assets_dir):
            errors.append("output_dir must differ from assets_dir")

        return errors

    def active_compression_level(self) -> int:
        """PNG compression level for the current build mode."""
        return self.production_compression_level if self.production else self.compression_level


ENV_VARS = [
    ("PIXEL_BUILD_GAME_ROOT", "Game root directory", "."),
    ("PIXEL_BUILD_ASSETS_DIR", "Asset sources directory, relative to the game root", "assets"),
    ("PIXEL_BUILD_SRC_DIR", "Generated client source directory", "client"),
    ("PIXEL_BUILD_OUTPUT_DIR", "Build output directory", "www"),
    ("PIXEL_BUILD_PRODUCTION", "Production build (true/false)", "false"),
    ("PIXEL_BUILD_PLUGINS", "Comma-separated list of plugins to run", "sprite"),
    ("PIXEL_BUILD_COMPRESSION_LEVEL", "PNG compression level (0-9)", "6"),
    ("PIXEL_BUILD_SPRITE_URL_PREFIX", "URL prefix for atlas images", "/sprites"),
    ("PIXEL_BUILD_WATCH_DEBOUNCE", "Seconds to collect watch events into one batch", "0.1"),
    ("PIXEL_BUILD_MAX_WORKERS", "Worker threads for concurrent rebuilds", "4"),
]
