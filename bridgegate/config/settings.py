"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BRIDGEGATE_", extra="ignore", frozen=True)

    app_name: str = "BridgeGate"
    log_level: str = "info"
    # 为空时只输出到 stderr
    log_file: str = ""
    host: str = "127.0.0.1"
    port: int = Field(default=9000, ge=1, le=65535)

    provider_name: str = "Z.AI"
    base_url: str = "https://api.z.ai/api/paas/v4"
    # 上游凭据只从环境变量读取，不经过命令行参数
    provider_token: str = ""

    auth_required: bool = False
    proxy_auth_token: str = ""
    request_id_header: str = "x-request-id"

    upstream_timeout_seconds: float = Field(default=30.0, gt=0)
    upstream_connect_timeout_seconds: float = Field(default=5.0, gt=0)
    upstream_read_timeout_seconds: float = Field(default=10.0, gt=0)
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20
    upstream_keepalive_expiry_seconds: float = 90.0

    max_request_body_bytes: int = 10 * 1024 * 1024
    max_messages_count: int = 100
    max_tokens_limit: int = 100_000

    shutdown_grace_seconds: int = 10

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_required and self.proxy_auth_token)


def load_settings() -> Settings:
    """Read settings from the environment. Raises ValidationError on bad values."""

    return Settings()
