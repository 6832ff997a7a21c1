from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "TraitVault API"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"  # development / staging / production

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "traitvault"
    POSTGRES_PASSWORD: str = "traitvault_secret"
    POSTGRES_DB: str = "traitvault"
    DATABASE_URL: str = ""  # Full SQLAlchemy URL, overrides POSTGRES_* when set

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Chainhook webhooks
    WEBHOOK_AUTH_TOKEN: str = ""
    # Skips the bearer check for local testing. Ignored when ENVIRONMENT=production.
    WEBHOOK_AUTH_BYPASS: bool = False

    # Collection used when an event does not name its contract
    NFT_CONTRACT_ADDRESS: str = "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM.stacks-punks"
    NFT_COLLECTION_NAME: str = "Stacks Punks"
    NFT_COLLECTION_DESCRIPTION: str = "A collection of unique Stacks Punks NFTs with various traits"

    # Chain reorg handling: "compensate" reverts the rolled back block, "log_only" records it
    REORG_POLICY: str = "compensate"

    # Rarity
    RARITY_AUTO_RECOMPUTE: bool = True
    RARITY_INTERVAL_SEC: int = 30  # Delay between recompute passes over dirty collections

    # Realtime
    ALLOWED_ORIGINS: str = "*"  # Comma separated
    NOTIFY_QUEUE_SIZE: int = 256  # Per-connection buffer, overflow is dropped

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()] or ["*"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
