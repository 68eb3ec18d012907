from pathlib import Path

import tomllib

from .paths import SETTINGS_NAME

# Settings key constants
SETTING_CONCURRENCY = 'scan.concurrency'
SETTING_BUFFER_SIZE = 'scan.buffer_size'
SETTING_HASH_ALGORITHM = 'scan.hash_algorithm'
SETTING_TYPES = 'scan.types'
SETTING_KEEP_GOING = 'scan.keep_going'
SETTING_LOGGING_PATH = 'logging.path'
SETTING_LOGGING_LEVEL = 'logging.level'


class Settings:
    """Read-only view of deduplicate.toml in the state directory.

    The file is optional. When it is missing every get() call returns its default.
    Values are returned as stored; interpreting them is up to the caller.

    Example:
        settings = Settings(Path.cwd())
        concurrency = settings.get(SETTING_CONCURRENCY, 10)
    """

    def __init__(self, state_directory: Path, settings_file: Path | None = None):
        """Load settings from TOML.

        Args:
            state_directory: Directory holding the work list and lock file
            settings_file: Explicit settings file, overrides the default location
        """
        self._settings = {}

        if settings_file is None:
            settings_file = state_directory / SETTINGS_NAME
        self._path = settings_file

        if settings_file.exists():
            with open(settings_file, 'rb') as f:
                self._settings = tomllib.load(f)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default=None):
        """Get a setting by dotted key, e.g. 'scan.concurrency'.

        Returns the default if any part of the key path is missing or an intermediate
        value is not a table.
        """
        keys = key.split('.')
        value = self._settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value
