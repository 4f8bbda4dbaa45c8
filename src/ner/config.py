"""NER settings loaded from configs/config.yaml."""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .batching import DEFAULT_MAX_LENGTH
from .errors import ConfigurationError

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "config.yaml"
CONFIG_ENV_VAR = "NER_CONFIG"

DEFAULT_MODEL_NAME = "dbmdz/bert-large-cased-finetuned-conll03-english"


class NERSettings(BaseModel):
    """Construction parameters for an NERModel.

    When all three of vocab_path, config_path and weights_path are set they
    take precedence over model_name.
    """
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str = DEFAULT_MODEL_NAME
    vocab_path: Optional[Path] = None
    config_path: Optional[Path] = None
    weights_path: Optional[Path] = None
    device: str = "auto"
    max_length: int = Field(DEFAULT_MAX_LENGTH, ge=1)
    batch_size: int = Field(32, ge=1)

    @property
    def uses_local_files(self) -> bool:
        return all(p is not None for p in (self.vocab_path, self.config_path, self.weights_path))


def _abs_from_project(p: Optional[str]) -> Optional[Path]:
    if not p:
        return None
    q = Path(p)
    return q if q.is_absolute() else (PROJECT_ROOT / q)


def load_settings(config_path: str | Path | None = None) -> NERSettings:
    """Read the `ner:` section of the YAML config.

    Path lookup order: argument, $NER_CONFIG, configs/config.yaml. A missing
    file yields the defaults.
    """
    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        log.info("No config file at %s, using default NER settings", config_path)
        return NERSettings()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {config_path}: {exc}") from exc

    section = dict(raw.get("ner") or {}) if isinstance(raw, dict) else {}
    for key in ("vocab_path", "config_path", "weights_path"):
        if key in section:
            section[key] = _abs_from_project(section[key])

    try:
        return NERSettings(**section)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid NER settings in {config_path}: {exc}") from exc
