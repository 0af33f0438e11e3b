"""Application configuration using pydantic-settings.

Gas amounts are decimal TON values converted to nano units through
``tonamm.amounts.to_nano`` (round half-up at 9 decimals).
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tonamm.amounts import to_nano
from tonamm.ledger.toncenter import MAINNET_ENDPOINT, SANDBOX_ENDPOINT, TESTNET_ENDPOINT
from tonamm.utils.polling import PollPolicy

NETWORK_ENDPOINTS = {
    "sandbox": SANDBOX_ENDPOINT,
    "testnet": TESTNET_ENDPOINT,
    "mainnet": MAINNET_ENDPOINT,
}


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
    debug: bool = Field(default=False, description="Enable debug logging")
    dry_run: bool = Field(default=True, description="Use the in-process ledger (no real transactions)")

    # ======================
    # Ledger RPC
    # ======================
    network: str = Field(default="sandbox", description="sandbox, testnet or mainnet")
    ledger_endpoint: Optional[str] = Field(
        default=None, description="JSON-RPC URL (defaults to the network's public endpoint)"
    )
    ledger_api_key: str = Field(default="", description="API key for higher rate limits")
    requests_per_second: float = Field(
        default=1.0, description="Shared rate limit for all ledger requests"
    )
    rate_limit_burst: int = Field(default=1, description="Token bucket capacity")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    workchain: int = Field(default=0, description="Workchain for derived addresses")

    # ======================
    # Pool
    # ======================
    swap_fee_bps: int = Field(default=30, description="Pool swap fee in basis points")
    quote_source: str = Field(default="local", description="local or remote quote computation")
    default_slippage_bps: int = Field(default=5, description="Add-liquidity ratio tolerance")

    # ======================
    # Polling
    # ======================
    seqno_poll_interval: float = Field(default=3.0, description="Seconds between seqno polls")
    seqno_poll_attempts: int = Field(default=10, description="Seqno polls before timing out")
    deploy_poll_interval: float = Field(default=2.5, description="Seconds between deploy checks")
    deploy_poll_attempts: int = Field(default=10, description="Deploy checks before timing out")
    poll_backoff: float = Field(default=1.0, description="Interval multiplier per poll")

    # ======================
    # Gas (TON)
    # ======================
    gas_add_liquidity: Decimal = Field(default=Decimal("0.2"))
    gas_remove_liquidity: Decimal = Field(default=Decimal("0.25"))
    gas_swap_fee: Decimal = Field(default=Decimal("0.04"))
    gas_swap_ton_fee: Decimal = Field(default=Decimal("0.08"))
    gas_swap_forward_ton: Decimal = Field(default=Decimal("0.04"))
    gas_upgrade: Decimal = Field(default=Decimal("0.04"))
    gas_collect: Decimal = Field(default=Decimal("0.04"))
    gas_mint: Decimal = Field(default=Decimal("0.2"))
    deploy_pool_value: Decimal = Field(default=Decimal("0.15"), description="Funding sent with the pool StateInit")
    deploy_minter_value: Decimal = Field(default=Decimal("0.25"), description="Funding sent with a minter StateInit")
    min_wallet_balance: Decimal = Field(default=Decimal("1"), description="Refuse to start below this balance")

    # ======================
    # Wallet / credentials
    # ======================
    credentials_path: str = Field(
        default="./build/deploy.config.json", description="Credential store (created if absent)"
    )
    wallet_address: Optional[str] = Field(default=None, description="Wallet address override")
    wallet_code_boc: Optional[str] = Field(
        default=None, description="Base64 BOC of the wallet v3r2 code, used to derive the address"
    )
    lp_wallet_code_boc: Optional[str] = Field(
        default=None, description="Base64 BOC of the LP wallet code for local sub-account derivation"
    )

    @property
    def endpoint(self) -> str:
        return self.ledger_endpoint or NETWORK_ENDPOINTS.get(self.network, SANDBOX_ENDPOINT)

    @property
    def is_testnet(self) -> bool:
        return self.network != "mainnet"

    def seqno_poll_policy(self) -> PollPolicy:
        return PollPolicy(self.seqno_poll_interval, self.seqno_poll_attempts, self.poll_backoff)

    def deploy_poll_policy(self) -> PollPolicy:
        return PollPolicy(self.deploy_poll_interval, self.deploy_poll_attempts, self.poll_backoff)

    def gas_nano(self, name: str) -> int:
        """Gas amount ``gas_<name>`` in nano units."""
        return to_nano(getattr(self, f"gas_{name}"))

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "network": self.network,
            "endpoint": self.endpoint,
            "ledger_api_key": "***" if self.ledger_api_key else "(not set)",
            "requests_per_second": self.requests_per_second,
            "swap_fee_bps": self.swap_fee_bps,
            "quote_source": self.quote_source,
            "credentials_path": self.credentials_path,
            "polling": {
                "seqno": [self.seqno_poll_interval, self.seqno_poll_attempts],
                "deploy": [self.deploy_poll_interval, self.deploy_poll_attempts],
                "backoff": self.poll_backoff,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
