"""
Finnhub credentials and HTTP settings.

The API key comes from a key file or the FINNHUB_API_KEY environment
variable. A key file holds one line:

    finnhub_api_key = 'your_key'

and is looked up, in order, at ./config/finnhub_api_key.txt (relative to
the working directory) and ~/.stock_portfolio/finnhub_api_key.txt.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

KEY_FILE_NAME = "finnhub_api_key.txt"
API_KEY_ENV_VAR = "FINNHUB_API_KEY"
REGISTER_URL = "https://finnhub.io/register"

_KEY_LINE_RE = re.compile(r"^\s*finnhub_api_key\s*=\s*['\"](.+?)['\"]", re.MULTILINE)


def default_key_file_paths() -> list[Path]:
    """Key file locations searched when no explicit path is given."""
    return [
        Path.cwd() / "config" / KEY_FILE_NAME,
        Path.home() / ".stock_portfolio" / KEY_FILE_NAME,
    ]


def read_key_file(path: Path) -> str:
    """
    Extract the API key from a key file.

    Raises:
        ValueError: If no ``finnhub_api_key = '...'`` line is present
    """
    match = _KEY_LINE_RE.search(path.read_text())
    if not match:
        raise ValueError(
            f"Could not parse API key from {path}. "
            f"Expected a line like: finnhub_api_key = 'your_key'"
        )
    return match.group(1)


@dataclass
class FinnhubConfig:
    """
    Settings for FinnhubClient.

    Attributes:
        api_key: Token sent with every request
        base_url: API root, without trailing slash
        timeout: Per-request timeout in seconds
        max_retries: Retries for timeouts, connection errors and 5xx responses
        retry_delay: Backoff base in seconds; retry n waits retry_delay * 2**n
    """

    api_key: str
    base_url: str = "https://finnhub.io/api/v1"
    timeout: int = 10
    max_retries: int = 3
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("API key cannot be empty")
        if self.timeout <= 0:
            raise ValueError("Timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("Max retries cannot be negative")
        if self.retry_delay <= 0:
            raise ValueError("Retry delay must be positive")

    @classmethod
    def from_env(cls, api_key_var: str = API_KEY_ENV_VAR) -> "FinnhubConfig":
        """
        Read the API key from an environment variable.

        Raises:
            ValueError: If the variable is unset or empty
        """
        api_key = os.getenv(api_key_var)
        if not api_key:
            raise ValueError(
                f"{api_key_var} environment variable not set. "
                f"Get your API key from {REGISTER_URL}"
            )
        return cls(api_key=api_key)

    @classmethod
    def from_file(cls, file_path: Optional[Union[str, Path]] = None) -> "FinnhubConfig":
        """
        Read the API key from a key file.

        Args:
            file_path: Explicit key file (``~`` is expanded). When omitted the
                first existing entry of default_key_file_paths() is used.

        Raises:
            FileNotFoundError: If no key file exists at the searched locations
            ValueError: If the key file has no parsable key line
        """
        if file_path is not None:
            candidates = [Path(file_path).expanduser()]
        else:
            candidates = default_key_file_paths()

        for path in candidates:
            if path.is_file():
                logger.debug(f"Reading Finnhub API key from {path}")
                return cls(api_key=read_key_file(path))

        searched = ", ".join(str(p) for p in candidates)
        raise FileNotFoundError(
            f"API key file not found (looked in: {searched}). "
            f"Create one containing: finnhub_api_key = 'your_key'"
        )

    @classmethod
    def load(cls, file_path: Optional[Union[str, Path]] = None) -> "FinnhubConfig":
        """
        Key file first, then the FINNHUB_API_KEY environment variable.

        Raises:
            ValueError: If neither source provides a key, or a key file
                exists but cannot be parsed
        """
        try:
            return cls.from_file(file_path)
        except FileNotFoundError as e:
            logger.debug(f"{e}; falling back to {API_KEY_ENV_VAR}")
            return cls.from_env()
