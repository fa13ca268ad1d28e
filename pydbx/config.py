"""Configuration management for pydbx."""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_ROOT = "auto"
DEFAULT_LOCALE = "en"

ENV_ACCESS_TOKEN = "DBX_ACCESS_TOKEN"
ENV_ROOT = "DBX_ROOT"
ENV_LOCALE = "DBX_LOCALE"


class Config:
    """Settings resolved from the environment and the user config file.

    Environment variables win over the config file, which is a plain
    ``KEY=value`` file at ``~/.config/pydbx/config``.
    """

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._config_path = config_path

    def get_config_path(self) -> Path:
        """Return the path of the user config file."""
        if self._config_path is not None:
            return self._config_path
        return Path.home() / ".config" / "pydbx" / "config"

    def _read_file(self) -> dict[str, str]:
        path = self.get_config_path()
        if not path.is_file():
            return {}

        values: dict[str, str] = {}
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                values[key.strip()] = value.strip().strip('"').strip("'")
        return values

    def _get(self, key: str) -> Optional[str]:
        value = os.environ.get(key)
        if value:
            return value
        return self._read_file().get(key) or None

    @property
    def access_token(self) -> Optional[str]:
        return self._get(ENV_ACCESS_TOKEN)

    @property
    def root(self) -> str:
        return self._get(ENV_ROOT) or DEFAULT_ROOT

    @property
    def locale(self) -> str:
        return self._get(ENV_LOCALE) or DEFAULT_LOCALE

    def is_configured(self) -> bool:
        """Check whether an access token is available."""
        return bool(self.access_token)

    def save_access_token(self, access_token: str) -> None:
        """Store the access token in the user config file.

        Other keys already present in the file are preserved. The file is
        created readable by the current user only.

        Args:
            access_token: OAuth2 bearer token to store
        """
        path = self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        values = self._read_file()
        values[ENV_ACCESS_TOKEN] = access_token

        with open(path, "w", encoding="utf-8") as f:
            for key, value in values.items():
                f.write(f"{key}={value}\n")
        path.chmod(0o600)
        logger.debug("Saved access token to %s", path)


config = Config()
