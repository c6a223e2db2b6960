"""Download stage configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bulk.errors import ConfigError

DEFAULT_BASE_URL = "https://arquivos.receitafederal.gov.br/dados/cnpj/dados_abertos_cnpj/"
DEFAULT_TIMEOUT_SECS = 300
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_PARALLEL = 4
DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024  # 10 MiB
USER_AGENT = "rfb-cnpj/0.1.0"


@dataclass(frozen=True)
class DownloadConfig:
    """Immutable downloader configuration.

    Invariants (enforced by :meth:`validate`):
      - max_parallel, max_retries, timeout_secs and chunk_size are positive.
      - base_url is an http(s) URL.
    """

    data_dir: Path = Path("data")
    base_url: str = DEFAULT_BASE_URL
    timeout_secs: float = DEFAULT_TIMEOUT_SECS
    max_retries: int = DEFAULT_MAX_RETRIES
    max_parallel: int = DEFAULT_MAX_PARALLEL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    skip_existing: bool = False
    restart: bool = False
    user_agent: str = USER_AGENT

    def validate(self) -> DownloadConfig:
        """Raise :class:`ConfigError` on the first invalid field; return self."""
        if self.max_parallel < 1:
            raise ConfigError("max_parallel must be at least 1")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be at least 1")
        if self.timeout_secs <= 0:
            raise ConfigError("timeout_secs must be positive")
        if self.chunk_size < 1:
            raise ConfigError("chunk_size must be positive")
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        return self
