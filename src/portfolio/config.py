"""Configuration management for the portfolio tracker.

This module provides configuration loading, validation, and management
for the tracker: watchlist, refresh intervals, search debounce and storage
location.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from .scheduler import DEFAULT_WATCHLIST, HOLDINGS_INTERVAL_S, WATCHLIST_INTERVAL_S
from .search import MIN_QUERY_LENGTH, SEARCH_DELAY_S
from .store import STORAGE_KEY

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "~/.stock_portfolio/portfolio.db"


class ConfigurationError(Exception):
    """Exception raised for configuration errors."""

    pass


class TrackerConfig:
    """Configuration for the portfolio tracker.

    Attributes:
        watchlist: Symbols shown in the ticker feed, in display order
        watchlist_interval: Seconds between watchlist refresh cycles
        holdings_interval: Seconds between holdings refresh cycles
        search_delay: Seconds of input quiet before a symbol search
        min_search_length: Shortest text that triggers a symbol search
        db_path: SQLite file holding persisted state
        storage_key: Key the portfolio snapshot is stored under
        verbose: Enable verbose logging
        api_key_file: Finnhub key file; None searches the default locations
    """

    def __init__(
        self,
        watchlist: Sequence[str] = DEFAULT_WATCHLIST,
        watchlist_interval: float = WATCHLIST_INTERVAL_S,
        holdings_interval: float = HOLDINGS_INTERVAL_S,
        search_delay: float = SEARCH_DELAY_S,
        min_search_length: int = MIN_QUERY_LENGTH,
        db_path: str = DEFAULT_DB_PATH,
        storage_key: str = STORAGE_KEY,
        verbose: bool = False,
        api_key_file: Optional[str] = None,
    ):
        self.watchlist = [s.strip().upper() for s in watchlist if s and s.strip()]
        self.watchlist_interval = watchlist_interval
        self.holdings_interval = holdings_interval
        self.search_delay = search_delay
        self.min_search_length = min_search_length
        self.db_path = db_path
        self.storage_key = storage_key
        self.verbose = verbose
        self.api_key_file = api_key_file

        self._validate()

    def _validate(self):
        """Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.watchlist:
            raise ConfigurationError("watchlist must contain at least one symbol")

        if self.watchlist_interval <= 0 or self.holdings_interval <= 0:
            raise ConfigurationError("refresh intervals must be positive")

        if self.search_delay < 0:
            raise ConfigurationError("search_delay cannot be negative")

        if self.min_search_length < 1:
            raise ConfigurationError("min_search_length must be at least 1")

        if not self.storage_key:
            raise ConfigurationError("storage_key cannot be empty")

    @classmethod
    def get_default_config_path(cls) -> Path:
        """Default configuration file path (~/.stock_portfolio/config.yaml)."""
        return Path.home() / ".stock_portfolio" / "config.yaml"

    @classmethod
    def load_from_file(cls, path: Optional[Path] = None) -> "TrackerConfig":
        """Load configuration from YAML file.

        If the file doesn't exist, returns default configuration.
        Merges file configuration with environment variable overrides.

        Args:
            path: Optional path to config file (default: ~/.stock_portfolio/config.yaml)

        Returns:
            Configuration instance

        Raises:
            ConfigurationError: If configuration file is invalid
        """
        config_path = path or cls.get_default_config_path()

        config_dict: dict[str, Any] = {}

        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f)
                    if file_config:
                        config_dict = file_config
                logger.debug(f"Loaded configuration from {config_path}")
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid YAML in configuration file: {e}"
                ) from e
            except OSError as e:
                raise ConfigurationError(
                    f"Failed to load configuration file: {e}"
                ) from e
        else:
            logger.debug(f"Configuration file not found at {config_path}, using defaults")

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        return cls.merge_with_defaults(config_dict)

    @classmethod
    def merge_with_defaults(cls, config_dict: dict[str, Any]) -> "TrackerConfig":
        """Merge configuration dictionary with defaults and environment variables.

        Precedence order (highest to lowest):
        1. Environment variables
        2. Config file values
        3. Default values

        Raises:
            ConfigurationError: If configuration is invalid

        Example:
            >>> config = TrackerConfig.merge_with_defaults({
            ...     "refresh": {"watchlist_interval": 15}
            ... })
        """
        refresh_config = config_dict.get("refresh") or {}
        search_config = config_dict.get("search") or {}
        storage_config = config_dict.get("storage") or {}
        cli_config = config_dict.get("cli") or {}
        finnhub_config = config_dict.get("finnhub") or {}

        env_watchlist = os.getenv("PORTFOLIO_WATCHLIST")
        if env_watchlist:
            watchlist = env_watchlist.split(",")
        else:
            watchlist = config_dict.get("watchlist") or list(DEFAULT_WATCHLIST)
        if isinstance(watchlist, str):
            watchlist = watchlist.split(",")

        try:
            watchlist_interval = float(
                os.getenv(
                    "PORTFOLIO_WATCHLIST_INTERVAL",
                    refresh_config.get("watchlist_interval", WATCHLIST_INTERVAL_S),
                )
            )
            holdings_interval = float(
                os.getenv(
                    "PORTFOLIO_HOLDINGS_INTERVAL",
                    refresh_config.get("holdings_interval", HOLDINGS_INTERVAL_S),
                )
            )
            search_delay = float(search_config.get("delay", SEARCH_DELAY_S))
            min_search_length = int(search_config.get("min_length", MIN_QUERY_LENGTH))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        db_path = os.getenv("PORTFOLIO_DB_PATH", storage_config.get("db_path", DEFAULT_DB_PATH))
        storage_key = storage_config.get("key", STORAGE_KEY)

        verbose = os.getenv("PORTFOLIO_VERBOSE") is not None or cli_config.get("verbose", False)
        api_key_file = finnhub_config.get("key_file")

        try:
            return cls(
                watchlist=watchlist,
                watchlist_interval=watchlist_interval,
                holdings_interval=holdings_interval,
                search_delay=search_delay,
                min_search_length=min_search_length,
                db_path=db_path,
                storage_key=storage_key,
                verbose=verbose,
                api_key_file=api_key_file,
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def save_to_file(self, path: Optional[Path] = None):
        """Save configuration to YAML file.

        Raises:
            ConfigurationError: If save fails
        """
        config_path = path or self.get_default_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(config_path, "w") as f:
                yaml.dump(self.to_dict(), f, default_flow_style=False)
            logger.info(f"Configuration saved to {config_path}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to the nested file layout."""
        return {
            "watchlist": list(self.watchlist),
            "refresh": {
                "watchlist_interval": self.watchlist_interval,
                "holdings_interval": self.holdings_interval,
            },
            "search": {
                "delay": self.search_delay,
                "min_length": self.min_search_length,
            },
            "storage": {
                "db_path": self.db_path,
                "key": self.storage_key,
            },
            "cli": {
                "verbose": self.verbose,
            },
            "finnhub": {
                "key_file": self.api_key_file,
            },
        }

    def __repr__(self) -> str:
        return (
            f"TrackerConfig("
            f"watchlist={self.watchlist!r}, "
            f"watchlist_interval={self.watchlist_interval}, "
            f"holdings_interval={self.holdings_interval}, "
            f"db_path={self.db_path!r})"
        )
