"""Label mapping: integer label id -> tag name, read from the model configuration."""
from __future__ import annotations
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import ConfigurationError, ResourceLoadError

log = logging.getLogger(__name__)

# Label id 0 is the "O" tag and never produces an entity, whatever it maps to
NON_ENTITY_ID = 0


def freeze_label_mapping(id2label: Mapping[Any, str]) -> Mapping[int, str]:
    """Return a read-only copy of `id2label` with integer keys.

    JSON configuration files carry the ids as strings ("0", "1", ...).
    """
    if not id2label:
        raise ConfigurationError("Label mapping (id2label) is empty")
    frozen: dict[int, str] = {}
    for key, name in id2label.items():
        try:
            label_id = int(key)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Label id {key!r} is not an integer") from exc
        frozen[label_id] = str(name)
    return MappingProxyType(frozen)


def label_mapping_from_config(config: Any) -> Mapping[int, str]:
    """Extract the label mapping from a `transformers` config object or a plain dict."""
    if isinstance(config, Mapping):
        id2label = config.get("id2label")
    else:
        id2label = getattr(config, "id2label", None)
    if not id2label:
        raise ConfigurationError(
            "No label dictionary (id2label) provided in the model configuration"
        )
    return freeze_label_mapping(id2label)


def load_label_mapping(config_path: str | Path) -> Mapping[int, str]:
    """Read `id2label` straight from a JSON model configuration file.

    The raw file is inspected because `transformers` fills in generic
    LABEL_<n> names when the key is absent.
    """
    config_path = Path(config_path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as exc:
        raise ResourceLoadError("configuration", config_path, "file not found") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ResourceLoadError("configuration", config_path, str(exc)) from exc
    if not isinstance(raw, dict):
        raise ResourceLoadError("configuration", config_path, "expected a JSON object")

    mapping = label_mapping_from_config(raw)
    log.debug("Loaded %d labels from %s", len(mapping), config_path)
    return mapping
