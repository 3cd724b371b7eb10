"""Transfer configuration with directory-based detection.

## .ticketport/ Folder Layout

```
.ticketport/
├── config.json          # Main config file
├── ticketport.db        # Default store location
└── attachments/         # Default attachment file root
```

### config.json Structure

```json
{
  "storage": {
    "db_path": "/abs/path/ticketport.db",
    "attachments_dir": "/abs/path/attachments"
  },
  "transfer": {
    "max_archive_size_mb": 100,
    "compression_level": 6,
    "exported_by": "alice"
  }
}
```

### Resolution Order

1. Check for .ticketport/config.json in current directory
2. Walk up parent directories looking for .ticketport/config.json
3. Fall back to ~/.config/ticketport/config.json (user default)
4. Built-in defaults (store under the platform user data dir)

``TICKETPORT_USER`` overrides the exporting user name from any source.
"""

import getpass
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

from .manifest import MAX_ARCHIVE_SIZE_BYTES

# User-level config location
USER_CONFIG_DIR = Path.home() / ".config" / "ticketport"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.json"

# Directory-level config
CONFIG_DIR = ".ticketport"
CONFIG_FILE = "config.json"
DB_FILENAME = "ticketport.db"

USER_ENV_VAR = "TICKETPORT_USER"
DEFAULT_COMPRESSION_LEVEL = 6


@dataclass
class TransferSettings:
    """Resolved transfer settings for a directory."""

    # Source of config
    config_path: Optional[Path] = None
    config_source: str = "none"  # "directory", "parent", "user", "none"

    # Storage
    db_path: Optional[Path] = None
    attachments_dir: Optional[Path] = None

    # Archive limits
    max_archive_size_bytes: int = MAX_ARCHIVE_SIZE_BYTES
    compression_level: int = DEFAULT_COMPRESSION_LEVEL

    exported_by: Optional[str] = None

    def get_db_path(self) -> Path:
        """Get the database path for this context.

        Resolution order:
        1. Explicit db_path from config (if set)
        2. Same directory as .ticketport/config.json (default)
        3. User data directory fallback
        """
        if self.db_path:
            return self.db_path

        if self.config_path and self.config_source != "user":
            return self.config_path.parent / DB_FILENAME

        return Path(user_data_dir("ticketport")) / DB_FILENAME

    def get_attachments_dir(self) -> Path:
        """Attachment files live next to the database unless configured."""
        if self.attachments_dir:
            return self.attachments_dir
        return self.get_db_path().parent / "attachments"

    def get_exported_by(self) -> str:
        """Name recorded as the exporting user in new manifests."""
        env_user = os.environ.get(USER_ENV_VAR)
        if env_user:
            return env_user
        if self.exported_by:
            return self.exported_by
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return "unknown"


def find_config(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest .ticketport/config.json by walking up the directory tree.

    Args:
        start_path: Directory to start searching from (default: cwd)

    Returns:
        Path to config.json if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    current = Path(start_path).resolve()

    while current != current.parent:
        config_path = current / CONFIG_DIR / CONFIG_FILE
        if config_path.exists():
            return config_path
        current = current.parent

    # Check root
    config_path = current / CONFIG_DIR / CONFIG_FILE
    if config_path.exists():
        return config_path

    return None


def load_config_file(config_path: Path) -> dict:
    """Load and parse a config.json file."""
    with open(config_path) as f:
        return json.load(f) or {}


def load_user_config() -> Optional[dict]:
    """Load user-level config from ~/.config/ticketport/config.json."""
    if USER_CONFIG_FILE.exists():
        return load_config_file(USER_CONFIG_FILE)
    return None


def _apply(settings: TransferSettings, data: dict) -> None:
    storage = data.get("storage", {})
    if storage.get("db_path"):
        settings.db_path = Path(storage["db_path"]).expanduser()
    if storage.get("attachments_dir"):
        settings.attachments_dir = Path(storage["attachments_dir"]).expanduser()

    transfer = data.get("transfer", {})
    if transfer.get("max_archive_size_mb"):
        settings.max_archive_size_bytes = int(transfer["max_archive_size_mb"] * 1024 * 1024)
    if transfer.get("compression_level") is not None:
        level = int(transfer["compression_level"])
        if not 0 <= level <= 9:
            raise ValueError(f"compression_level must be between 0 and 9, got {level}")
        settings.compression_level = level
    if transfer.get("exported_by"):
        settings.exported_by = transfer["exported_by"]


def resolve_settings(path: Optional[Path] = None) -> TransferSettings:
    """Resolve transfer settings for a path.

    Resolution order:
    1. .ticketport/config.json in the path or its parents
    2. ~/.config/ticketport/config.json (user default)
    3. Built-in defaults

    Args:
        path: Directory to resolve settings for (default: cwd)

    Returns:
        TransferSettings with resolved configuration
    """
    settings = TransferSettings()

    config_path = find_config(path)
    if config_path:
        settings.config_path = config_path

        target_dir = Path(path).resolve() if path else Path.cwd().resolve()
        config_dir = config_path.parent.parent  # .ticketport/config.json -> .ticketport -> parent
        settings.config_source = "directory" if config_dir == target_dir else "parent"

        _apply(settings, load_config_file(config_path))
        return settings

    user_config = load_user_config()
    if user_config:
        settings.config_path = USER_CONFIG_FILE
        settings.config_source = "user"
        _apply(settings, user_config)

    return settings


def create_config(
    path: Path,
    db_path: Optional[Path] = None,
    attachments_dir: Optional[Path] = None,
    exported_by: Optional[str] = None,
) -> Path:
    """Create a .ticketport/config.json file in the specified directory.

    Returns:
        Path to created config file
    """
    config_dir = Path(path) / CONFIG_DIR
    config_dir.mkdir(exist_ok=True)

    config: dict = {"storage": {}, "transfer": {}}
    if db_path:
        config["storage"]["db_path"] = str(db_path)
    if attachments_dir:
        config["storage"]["attachments_dir"] = str(attachments_dir)
    if exported_by:
        config["transfer"]["exported_by"] = exported_by

    config_path = config_dir / CONFIG_FILE
    with open(config_path, "w") as f:
        json.dump(config, f, indent=2)

    return config_path
