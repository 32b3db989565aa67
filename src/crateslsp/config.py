"""
Server settings.

Settings are layered, later sources winning:

1. Built-in defaults (crates.io).
2. A ``.crateslsp.toml`` project file in the workspace root.
3. ``initializationOptions`` sent by the client.

Registry settings are read once at ``initialize``; the log level can also be
changed later through ``workspace/didChangeConfiguration``.
"""
from __future__ import annotations

import dataclasses
import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

from crateslsp import __version__

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = '.crateslsp.toml'

# camelCase keys used by LSP clients → Settings field names
_OPTION_KEYS = {
    'indexUrl': 'index_url',
    'apiUrl': 'api_url',
    'docsUrl': 'docs_url',
    'userAgent': 'user_agent',
    'metadataInterval': 'metadata_interval',
    'requestTimeout': 'request_timeout',
    'logLevel': 'log_level',
}


@dataclass(frozen=True)
class Settings:
    index_url: str = 'https://index.crates.io'
    api_url: str = 'https://crates.io/api/v1/crates'
    docs_url: str = 'https://docs.rs'
    user_agent: str = f'crateslsp/{__version__} (https://github.com/crateslsp/crateslsp)'
    metadata_interval: float = 1.0     # seconds between crates.io API requests
    request_timeout: float = 30.0
    log_level: str | None = None

    def merged(self, options) -> Settings:
        """Return a copy updated from a mapping of camelCase or snake_case keys."""
        if not isinstance(options, dict):
            return self
        fields = {f.name for f in dataclasses.fields(self)}
        changes = {}
        for key, value in options.items():
            name = _OPTION_KEYS.get(key, key)
            if name not in fields or value is None:
                continue
            if name in ('metadata_interval', 'request_timeout'):
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    logger.warning('ignoring invalid %s setting: %r', key, value)
                    continue
            elif not isinstance(value, str):
                logger.warning('ignoring invalid %s setting: %r', key, value)
                continue
            changes[name] = value
        return dataclasses.replace(self, **changes)


def read_project_config(workspace_root: str | None) -> dict:
    """Parse ``.crateslsp.toml`` in *workspace_root*; empty if absent or invalid."""
    if not workspace_root:
        return {}
    config_path = Path(workspace_root) / PROJECT_CONFIG_NAME
    if not config_path.exists():
        return {}
    try:
        return tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning('could not read %s', config_path, exc_info=True)
        return {}


def load_settings(workspace_root: str | None = None, options=None) -> Settings:
    """Build the effective :class:`Settings` for a session."""
    settings = Settings().merged(read_project_config(workspace_root))
    if isinstance(options, dict):
        # clients commonly nest server options under a "crates" key
        settings = settings.merged(options.get('crates', options))
    return settings


def apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, raw.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)
