"""
PEAC Shop Configuration Module

Loads environment variables for backend configuration of the x402 checkout
and PEAC receipt issuer.

The Settings object is constructed once by create_app() and threaded through
the service container; nothing else reads the environment.
"""
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Any, Dict, Literal, Optional


DEFAULT_AIPREF_SNAPSHOT: Dict[str, Any] = {
    "version": "0.1",
    "train-ai": "disallow",
    "search": "allow",
    "ai-use": "allow-with-receipt",
    "receipts": "required",
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - Signing key material is read from PEAC_SIGNING_JWK (private JWK JSON)
      or PEAC_SIGNING_KEY_PATH (PEM). Demo mode generates an ephemeral key
      when neither is set.
    - Demo mode accepts only the configured demo proof token instead of
      calling the settlement facilitator.
    """

    # Demo Configuration
    demo_mode: bool = True
    demo_token: str = "demo-pay-ok-123"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Public URLs
    public_origin: str = "http://localhost:8000"

    # x402 payment defaults
    x402_chain: str = "base"
    x402_currency: str = "USDC"

    # Settlement facilitator
    facilitator_verify_url: Optional[str] = None
    facilitator_api_key: Optional[str] = None
    facilitator_timeout_seconds: float = 10.0

    # Policy (AIPREF) snapshot
    policy_snapshot_url: Optional[str] = None
    policy_timeout_seconds: float = 5.0
    aipref_snapshot: Dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_AIPREF_SNAPSHOT))

    # Signing keys
    peac_signing_jwk: Optional[str] = None
    peac_signing_key_path: Optional[str] = None
    peac_kid: str = "peac-demo-key-1"
    receipt_version: str = "0.9.27"

    # Session token lifetime (0 disables the exp claim)
    session_ttl_seconds: int = Field(default=900, ge=0)

    # Idempotency
    idempotency_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./peac_shop.db"
    idempotency_ttl_seconds: int = Field(default=86400, gt=0)
    idempotency_lock_timeout_seconds: float = 30.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def aipref_url(self) -> str:
        """URL recorded in receipts as the policy source."""
        return self.policy_snapshot_url or f"{self.public_origin.rstrip('/')}/aipref.json"

    @property
    def verify_url(self) -> str:
        return f"{self.public_origin.rstrip('/')}/api/verify"

    @property
    def policy_discovery_url(self) -> str:
        return f"{self.public_origin.rstrip('/')}/.well-known/peac.txt"


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, applying explicit overrides."""
    return Settings(**overrides)
