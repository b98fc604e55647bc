"""Reading store configuration files.

A config file is YAML (``.yaml``/``.yml``) or JSON (``.json``). The store
settings either make up the whole document or sit under a top-level
``store:`` section, so they can share a file with the host application's own
settings:

    store:
      backend: sqlite
      database_filename: vectors.db
      embedding_length: 384
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from embedstore.config.schemas import StoreConfig
from embedstore.core.exceptions import ConfigError
from embedstore.core.logging import get_logger

logger = get_logger(__name__)

# Section holding the store settings in a shared config file
STORE_SECTION = "store"


def _parse_yaml(text: str) -> Any:
    return yaml.safe_load(text)


def _parse_json(text: str) -> Any:
    return json.loads(text)


PARSERS: Dict[str, Callable[[str], Any]] = {
    ".yaml": _parse_yaml,
    ".yml": _parse_yaml,
    ".json": _parse_json,
}


class ConfigLoader:
    """Loads store settings from files and validates them into :class:`StoreConfig`."""

    @staticmethod
    def load(path: Union[str, Path]) -> Dict[str, Any]:
        """Read the store settings of a config file.

        Args:
            path: Path to a ``.yaml``, ``.yml`` or ``.json`` file

        Returns:
            The ``store`` section if the file has one, else the whole
            document (empty for an empty file)

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the format is unsupported, the file cannot be
                parsed, or it does not hold a mapping
        """
        path = Path(path)
        parser = PARSERS.get(path.suffix.lower())
        if parser is None:
            raise ConfigError(
                f"Unsupported config format: {path.suffix.lower()}",
                details={"path": str(path), "supported": ", ".join(sorted(PARSERS))},
            )
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        try:
            document = parser(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError("Cannot parse config file", details={"path": str(path)}, cause=e) from e

        if document is None:
            return {}
        if isinstance(document, dict) and STORE_SECTION in document:
            document = document[STORE_SECTION] or {}
        if not isinstance(document, dict):
            raise ConfigError(
                "Store settings must be a mapping",
                details={"path": str(path), "type": type(document).__name__},
            )
        logger.debug("Read store settings %s from %s", sorted(document), path)
        return document

    @staticmethod
    def validate(config: Dict[str, Any]) -> StoreConfig:
        """Validate raw settings, logging every failing field.

        Raises:
            ValidationError: If the settings are invalid
        """
        try:
            return StoreConfig(**config)
        except ValidationError as e:
            for error in e.errors():
                location = " -> ".join(str(x) for x in error["loc"]) or "config"
                logger.error("Invalid store setting: %s: %s", location, error["msg"])
            raise

    @staticmethod
    def load_and_validate(path: Optional[Union[str, Path]] = None, **overrides: Any) -> StoreConfig:
        """Build a :class:`StoreConfig` from a file plus explicit overrides.

        Overrides win over the file; overrides that are ``None`` are ignored,
        so unset command line options can be passed straight through.

        Example:
            >>> ConfigLoader.load_and_validate("app.yaml", collection="notes", backend=None)
        """
        config = ConfigLoader.load(path) if path is not None else {}
        config.update({key: value for key, value in overrides.items() if value is not None})
        return ConfigLoader.validate(config)
