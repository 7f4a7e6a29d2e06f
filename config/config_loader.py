"""Load settings.yaml into typed dataclasses. Checks the gateway API key at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class GatewayConfig:
    base_url: str
    api_key_env: str
    timeout_sec: float
    title_timeout_sec: float
    health_timeout_sec: float = 15.0


@dataclass
class CouncilConfig:
    panel: list[str]
    chairman: str
    chairman_fallbacks: list[str] = field(default_factory=list)
    title_model: str = ""

    @property
    def chairman_candidates(self) -> list[str]:
        """Primary chairman first, then each fallback in priority order."""
        return [self.chairman, *self.chairman_fallbacks]


@dataclass
class StorageConfig:
    data_dir: Path


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8001
    cors_origins: list[str] = field(default_factory=list)


@dataclass
class PromptsConfig:
    ranking: str
    synthesis: str
    title: str


@dataclass
class AppConfig:
    gateway: GatewayConfig
    council: CouncilConfig
    storage: StorageConfig
    server: ServerConfig
    prompts: PromptsConfig
    api_key_available: bool = False


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    A missing API key is only logged: the gateway then treats every call as
    failed, which callers already handle.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    gateway_raw = raw["gateway"]
    gateway = GatewayConfig(
        base_url=str(gateway_raw["base_url"]),
        api_key_env=str(gateway_raw["api_key_env"]),
        timeout_sec=float(gateway_raw["timeout_sec"]),
        title_timeout_sec=float(gateway_raw["title_timeout_sec"]),
        health_timeout_sec=float(gateway_raw.get("health_timeout_sec", 15.0)),
    )

    council_raw = raw["council"]
    council = CouncilConfig(
        panel=list(council_raw["panel"]),
        chairman=str(council_raw["chairman"]),
        chairman_fallbacks=list(council_raw.get("chairman_fallbacks") or []),
        title_model=str(council_raw["title_model"]),
    )
    if not council.panel:
        raise ValueError("council.panel must list at least one model")

    storage = StorageConfig(data_dir=Path(raw["storage"]["data_dir"]))

    server_raw = raw.get("server") or {}
    server = ServerConfig(
        host=str(server_raw.get("host", "127.0.0.1")),
        port=int(server_raw.get("port", 8001)),
        cors_origins=list(server_raw.get("cors_origins") or []),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        ranking=prompts_raw["ranking"],
        synthesis=prompts_raw["synthesis"],
        title=prompts_raw["title"],
    )

    api_key = os.environ.get(gateway.api_key_env, "").strip()
    if api_key:
        logger.info("Gateway API key found in %s", gateway.api_key_env)
    else:
        logger.info(
            "Gateway API key missing (set %s in .env); every model call will fail",
            gateway.api_key_env,
        )

    return AppConfig(
        gateway=gateway,
        council=council,
        storage=storage,
        server=server,
        prompts=prompts,
        api_key_available=bool(api_key),
    )
