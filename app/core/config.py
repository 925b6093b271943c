from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "WorldTile Land Deeds"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # shared secret presented by the blockchain watcher
    payment_watcher_token: Optional[str] = None

    # ─────────── SALES / PAYMENT ───────────
    unit_price_usdt: str = "8.000000"
    usdt_receive_address: str = "TLedgerAddressNotConfigured"
    payment_network: str = "TRC20"
    required_confirmations: int = 19
    order_ttl_minutes: int = 15
    referral_commission_rate: str = "0.25"
    auto_honor_late_payments: bool = False

    # ─────────── NFT MINTING ───────────
    mint_on_settlement: bool = True
    nft_contract_address: str = "TBD"
    nft_chain: str = "POLYGON"
    nft_standard: str = "ERC721"
    nft_image_url: Optional[str] = None
    opensea_base_url: str = "https://opensea.io/assets/matic"
    minting_engine_url: Optional[str] = None
    minting_secret_key: Optional[str] = None
    minting_backend_wallet: Optional[str] = None
    minting_timeout_seconds: float = 60.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
