"""
Configuration management for the budget engine.

Loads ``config.yaml`` over built-in defaults and exposes a validated,
typed view (``EngineSettings``) of the policy constants the engine uses:
guide factors, weekend boost ratio, cache TTL, store batch size and the
stale/urgent day thresholds.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent
_DEFAULT_DB_FILENAME = "household.db"

CONFIG_FILE = "config.yaml"

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "guideline": {
        "guide_factor": 0.95,
        "full_guide_factor": 1.0,
        "weekend_boost_ratio": 20,
        "weekend_boosted_scopes": [
            {"category": "Food", "sub_category": "Dining Out"},
        ],
    },
    "cache": {
        "ttl_ms": 600000,
    },
    "store": {
        "batch_size": 10,
        "budget_scope_key": "(all)",
    },
    "policy": {
        "stale_entry_days": 3,
        "urgent_todo_days": 7,
    },
    "categories": [
        "Food",
        "Utilities",
        "Household",
        "Car",
        "Entertainment",
        "Company",
        "Children",
        "Medical",
        "Fixed Costs",
        "Other",
        "Savings",
        "Transfers",
    ],
    "collapsed_categories": ["Fixed Costs", "Savings", "Transfers"],
    "subcategories": {
        "Food": ["Groceries", "Dining Out", "Free input"],
        "Utilities": ["Electricity", "Gas", "Water", "Free input"],
        "Household": ["Daily Goods", "Free input"],
        "Car": ["Fuel", "Parking", "Maintenance", "Free input"],
        "Children": ["School", "Clothing", "Free input"],
        "Medical": ["Hospital", "Pharmacy", "Free input"],
    },
    "free_input_label": "Free input",
    "registrant_split_categories": ["Entertainment"],
    "database": {
        "data_dir": "data",
        "path": _DEFAULT_DB_FILENAME,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file merged over the defaults.

    Args:
        config_path: Path to the YAML file. When None, ``config.yaml`` in the
            working directory is used if present.

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If an explicit path does not exist or the YAML is invalid
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else Path(CONFIG_FILE)

    if not path.exists():
        if explicit:
            raise ConfigError("Config file not found", details={"config_path": str(path)})
        logger.debug(f"No {CONFIG_FILE} found; using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            "Invalid YAML in config file",
            details={"config_path": str(path)},
            original_error=e
        ) from e

    if not isinstance(loaded, dict):
        raise ConfigError("Config file must contain a mapping", details={"config_path": str(path)})

    config = _deep_merge(DEFAULT_CONFIG, loaded)
    logger.info(f"Configuration loaded from {path}")
    return config


@dataclass(frozen=True)
class EngineSettings:
    """
    Validated policy constants for the guideline engine.

    Attributes:
        guide_factor: Budget multiplier in normal mode
        full_guide_factor: Budget multiplier in "full budget" mode
        weekend_boost_ratio: Weekend day weight for boosted scopes
        weekend_boosted_scopes: (category, sub_category) pairs that use weekend boosting
        ttl_ms: Cache entry lifetime in milliseconds
        batch_size: Months per store "IN" query
        budget_scope_key: Registrant scope of the budget document to read
        stale_entry_days: Days without an entry after which a registrant is flagged
        urgent_todo_days: Days ahead within which a due item counts as urgent
        categories: Budget categories in display order
        collapsed_categories: Categories hidden from the overall view by default
        subcategories: Official subcategories per category
        free_input_label: Bucket for subcategories outside the official list
        registrant_split_categories: Categories whose breakdown is by registrant
    """
    guide_factor: float = 0.95
    full_guide_factor: float = 1.0
    weekend_boost_ratio: int = 20
    weekend_boosted_scopes: Tuple[Tuple[str, str], ...] = (("Food", "Dining Out"),)
    ttl_ms: int = 600000
    batch_size: int = 10
    budget_scope_key: str = "(all)"
    stale_entry_days: int = 3
    urgent_todo_days: int = 7
    categories: Tuple[str, ...] = field(default_factory=tuple)
    collapsed_categories: Tuple[str, ...] = field(default_factory=tuple)
    subcategories: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    free_input_label: str = "Free input"
    registrant_split_categories: Tuple[str, ...] = field(default_factory=tuple)

    def factor(self, full: bool = False) -> float:
        """Guide factor for normal or full-budget mode."""
        return self.full_guide_factor if full else self.guide_factor

    def is_weekend_boosted(self, category: Optional[str], sub_category: Optional[str]) -> bool:
        if not category or not sub_category:
            return False
        return (category, sub_category) in self.weekend_boosted_scopes

    def visible_categories(self, include_collapsed: bool = False) -> List[str]:
        if include_collapsed:
            return list(self.categories)
        return [c for c in self.categories if c not in self.collapsed_categories]

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "EngineSettings":
        """
        Build settings from a configuration dictionary.

        Args:
            config: Output of :func:`load_config` (defaults when None)

        Returns:
            Validated EngineSettings

        Raises:
            ConfigError: If a value is missing its expected type or range
        """
        config = _deep_merge(DEFAULT_CONFIG, config or {})
        guideline_cfg = config["guideline"]
        try:
            settings = cls(
                guide_factor=float(guideline_cfg["guide_factor"]),
                full_guide_factor=float(guideline_cfg["full_guide_factor"]),
                weekend_boost_ratio=int(guideline_cfg["weekend_boost_ratio"]),
                weekend_boosted_scopes=tuple(
                    (str(scope["category"]), str(scope["sub_category"]))
                    for scope in guideline_cfg.get("weekend_boosted_scopes") or []
                ),
                ttl_ms=int(config["cache"]["ttl_ms"]),
                batch_size=int(config["store"]["batch_size"]),
                budget_scope_key=str(config["store"]["budget_scope_key"]),
                stale_entry_days=int(config["policy"]["stale_entry_days"]),
                urgent_todo_days=int(config["policy"]["urgent_todo_days"]),
                categories=tuple(str(c) for c in config.get("categories") or []),
                collapsed_categories=tuple(str(c) for c in config.get("collapsed_categories") or []),
                subcategories={
                    str(cat): tuple(str(s) for s in subs or [])
                    for cat, subs in (config.get("subcategories") or {}).items()
                },
                free_input_label=str(config.get("free_input_label", "Free input")),
                registrant_split_categories=tuple(
                    str(c) for c in config.get("registrant_split_categories") or []
                ),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError("Invalid engine configuration", original_error=e) from e

        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ConfigError if any policy constant is out of range."""
        for name in ("guide_factor", "full_guide_factor"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigError(f"{name} must be in (0, 1]", details={name: value})
        if self.weekend_boost_ratio < 1:
            raise ConfigError(
                "weekend_boost_ratio must be at least 1",
                details={"weekend_boost_ratio": self.weekend_boost_ratio}
            )
        if self.ttl_ms < 0:
            raise ConfigError("ttl_ms must not be negative", details={"ttl_ms": self.ttl_ms})
        if self.batch_size < 1:
            raise ConfigError("batch_size must be at least 1", details={"batch_size": self.batch_size})
        if self.stale_entry_days < 0 or self.urgent_todo_days < 0:
            raise ConfigError("Day thresholds must not be negative")


def _coerce_path(path_value: Union[str, Path]) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return _PROJECT_ROOT / path


def resolve_connection_string(config: Optional[Dict[str, Any]] = None) -> str:
    """
    Resolve the database connection string.

    Order of precedence:
        1. DB_CONNECTION_STRING environment variable
        2. config['database']['connection_string']
        3. SQLite file ``path`` under ``data_dir``

    Args:
        config: Optional configuration dictionary.

    Returns:
        SQLAlchemy connection string.
    """
    env_conn = os.environ.get("DB_CONNECTION_STRING")
    if env_conn:
        return env_conn

    db_config = (config or {}).get("database", {})
    if db_config.get("connection_string"):
        return db_config["connection_string"]

    data_dir = _coerce_path(db_config.get("data_dir", "data"))
    db_path = Path(db_config.get("path", _DEFAULT_DB_FILENAME))
    if not db_path.is_absolute():
        db_path = data_dir / db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create data directory '{db_path.parent}': {e}")
        raise ConfigError(
            "Unable to create data directory",
            details={"data_dir": str(db_path.parent)},
            original_error=e
        ) from e
    return f"sqlite:///{db_path.as_posix()}"


def resolve_log_path(log_path: str) -> Path:
    """Absolute log file path under the project root, with its directory created."""
    resolved = _coerce_path(log_path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved
