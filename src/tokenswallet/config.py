"""Application configuration using pydantic-settings.

Covers the secret store, both chain endpoints and the account database.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=5000, description="API server port")
    admin_token: str = Field(
        default="", description="Token for service-to-service endpoints (Google login, transfer-by-email)"
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/tokenswallet.db",
        description="Account/receipt database URL",
    )

    # ======================
    # Secret store
    # ======================
    secret_store_backend: str = Field(
        default="memory", description="Secret store backend: memory or vault"
    )
    vault_endpoint: str = Field(default="http://127.0.0.1:8200", description="Vault address")
    vault_token: str = Field(default="", description="Vault token")
    vault_mount: str = Field(default="secret", description="KV v2 mount point")
    vault_timeout: float = Field(default=10.0, description="Vault request timeout (seconds)")

    # ======================
    # Ethereum
    # ======================
    eth_rpc_url: str = Field(
        default="https://rpc-opal.unique.network", description="Ethereum JSON-RPC URL"
    )
    eth_rpc_timeout: float = Field(default=30.0, description="JSON-RPC request timeout")
    eth_confirmation_timeout: float = Field(
        default=300.0, description="How long the confirmation watcher polls for a receipt"
    )

    # ======================
    # Substrate
    # ======================
    substrate_rpc_url: str = Field(
        default="ws://127.0.0.1:9944", description="Substrate node websocket URL"
    )
    substrate_ss58_prefix: int = Field(default=42, description="SS58 address prefix")
    substrate_token_id: str = Field(
        default="OPAL", description="Currency id for the multi-asset tokens pallet"
    )
    use_balances: bool = Field(
        default=False, description="Force native balances transfers over the tokens pallet"
    )
    substrate_decimals: Optional[int] = Field(
        default=None, description="Override for the chain's token decimals"
    )
    substrate_collection_id: int = Field(
        default=0, description="Collection id used by the custom Unique transfer call"
    )
    substrate_inclusion_timeout: float = Field(
        default=60.0, description="Maximum wait for block inclusion (seconds)"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "secret_store": {
                "backend": self.secret_store_backend,
                "endpoint": self.vault_endpoint,
                "mount": self.vault_mount,
                "token": "***" if self.vault_token else "(not set)",
            },
            "ethereum": {"rpc": self.eth_rpc_url},
            "substrate": {
                "rpc": self.substrate_rpc_url,
                "ss58_prefix": self.substrate_ss58_prefix,
                "token_id": self.substrate_token_id,
                "use_balances": self.use_balances,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
