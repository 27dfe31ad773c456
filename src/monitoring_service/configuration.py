from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .search import SearchLimits

# Load environment variables from .env file
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:5]]

if os.environ.get("MONITORING_CONFIG"):
    _CANDIDATE_CONFIG_PATHS.insert(0, Path(os.environ["MONITORING_CONFIG"]))

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in misconfigured environments
    raise FileNotFoundError("config.yaml could not be located; set MONITORING_CONFIG or reinstall the package.")


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Merge programmatic overrides onto the packaged defaults and resolve
    environment interpolations.

    Unknown keys in ``overrides`` are rejected.
    """
    base = OmegaConf.create(OmegaConf.to_container(_load_default_config(), resolve=False))
    OmegaConf.set_struct(base, True)

    merged = OmegaConf.merge(base, OmegaConf.create(overrides or {}))
    resolved = OmegaConf.create(OmegaConf.to_container(merged, resolve=True))
    OmegaConf.set_readonly(resolved, True)
    return resolved


def build_search_limits(settings: DictConfig) -> SearchLimits:
    search = settings.search
    return SearchLimits(
        max_id_list_size=int(search.max_id_list_size),
        max_page_size=int(search.max_page_size),
        default_page_size=int(search.default_page_size),
        sort_properties=dict(OmegaConf.to_container(search.sort_properties)),
    )


def configure_logging(settings: DictConfig) -> None:
    """Apply the ``logging`` section to the root logger."""
    level = str(settings.logging.level).upper()
    logging.basicConfig(level=level, format=str(settings.logging.format))
    logging.getLogger().setLevel(level)
