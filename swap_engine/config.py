from pathlib import Path
from typing import Any, Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        env_prefix="SWAP_ENGINE_",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain connectivity
    chain_id: int = Field(default=100, description="Default chain the engine operates on")
    rpc_urls: List[str] = Field(
        default_factory=lambda: [
            "https://rpc.gnosischain.com",
            "https://gnosis-rpc.publicnode.com",
        ],
        description="Ordered JSON-RPC endpoints used by the default provider",
    )
    http_timeout_seconds: float = Field(default=20.0, description="HTTP timeout for RPC and venue calls")

    # Direct swap (Algebra / Swapr V3)
    swapr_router_address: str = Field(
        default="0xffb643e73f280b97809a8b41f7232ab401a04ee1",
        description="Swapr V3 router used for exactInputSingle swaps",
    )
    default_slippage_bps: int = Field(default=50, ge=0, le=10_000, description="Default slippage tolerance")
    default_deadline_seconds: int = Field(default=3600, ge=1, description="Swap deadline offset from now")
    default_swap_gas_limit: int = Field(default=350_000, description="Gas limit attached to router swaps")

    # Batch auction (CoW Protocol)
    cow_api_base_url: str = Field(default="https://api.cow.fi", description="CoW order venue base URL")
    cow_vault_relayer_address: str = Field(
        default="0xC92E8bdf79f0507f65a392b0ab4667716BFE0110",
        description="Spender that must hold the allowance for CoW orders",
    )
    cow_settlement_address: str = Field(
        default="0x9008D19f58AAbD9eD0D60971565AA8510560ab41",
        description="GPv2 settlement contract (EIP-712 verifying contract)",
    )
    cow_networks: Dict[int, str] = Field(
        default_factory=lambda: {1: "mainnet", 100: "xdai", 42161: "arbitrum_one"},
        description="Chain id -> CoW API network slug",
    )
    order_validity_seconds: int = Field(default=3600, ge=1, description="Order validTo offset from now")
    order_poll_interval_seconds: float = Field(default=5.0, ge=0, description="Delay between order status polls")
    order_max_poll_attempts: int = Field(default=20, ge=1, description="Polls before reporting pending")

    # Explorers
    tx_explorer_url: str = Field(default="https://gnosisscan.io", description="Transaction explorer base URL")
    order_explorer_url: str = Field(default="https://explorer.cow.fi/gc", description="CoW order explorer base URL")

    def cow_network_for(self, chain_id: int) -> str | None:
        return self.cow_networks.get(int(chain_id))

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.tx_explorer_url.rstrip('/')}/tx/{tx_hash}"

    def explorer_order_url(self, order_uid: str) -> str:
        return f"{self.order_explorer_url.rstrip('/')}/orders/{order_uid}"

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        object.__setattr__(self, "rpc_urls", [url.rstrip("/") for url in self.rpc_urls if url])


# Global settings instance
settings = Settings()
