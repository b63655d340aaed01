"""VaultConfig — settings for wiring a vault."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".docvault"


@dataclass
class VaultConfig:
    """Configuration for a ``VaultAsync`` / ``Vault`` instance."""

    database_url: str = f"sqlite+aiosqlite:///{_DEFAULT_DATA_DIR / 'vault.db'}"
    """Async SQLAlchemy URL for documents, grants and offers."""

    blob_dir: Path = _DEFAULT_DATA_DIR / "blobs"
    """Root directory for the default ``LocalBlobStore``."""

    retrieval_url_ttl: timedelta = timedelta(hours=1)
    """Lifetime of minted retrieval URLs."""

    webhook_url: str | None = None
    """If set, share and revoke notifications are posted here."""

    webhook_timeout: float = 10.0
    """Seconds before a webhook delivery is abandoned."""

    echo_sql: bool = False
    """Log every SQL statement (SQLAlchemy ``echo``)."""

    def __post_init__(self) -> None:
        self.blob_dir = Path(self.blob_dir)
        if self.retrieval_url_ttl <= timedelta(0):
            raise ValueError("retrieval_url_ttl must be positive")
        if self.webhook_timeout <= 0:
            raise ValueError("webhook_timeout must be positive")

    @classmethod
    def from_env(cls, prefix: str = "DOCVAULT_") -> VaultConfig:
        """Build a config from ``{prefix}*`` environment variables, defaulting the rest.

        Recognised: ``DATABASE_URL``, ``BLOB_DIR``, ``URL_TTL_SECONDS``,
        ``WEBHOOK_URL``, ``WEBHOOK_TIMEOUT``, ``ECHO_SQL``.
        """
        env = os.environ
        config = cls()
        url = env.get(f"{prefix}DATABASE_URL")
        if url:
            config.database_url = url
        blob_dir = env.get(f"{prefix}BLOB_DIR")
        if blob_dir:
            config.blob_dir = Path(blob_dir)
        ttl = env.get(f"{prefix}URL_TTL_SECONDS")
        if ttl:
            config.retrieval_url_ttl = timedelta(seconds=int(ttl))
        config.webhook_url = env.get(f"{prefix}WEBHOOK_URL") or None
        timeout = env.get(f"{prefix}WEBHOOK_TIMEOUT")
        if timeout:
            config.webhook_timeout = float(timeout)
        config.echo_sql = env.get(f"{prefix}ECHO_SQL", "").lower() in ("1", "true", "yes")
        config.__post_init__()
        return config
