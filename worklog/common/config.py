"""
Configuration Management for Worklog

Loads configuration from ~/.worklog/config.json and environment variables.
The stored file plays the role of the client-side configuration; environment
values always take precedence over it.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger("worklog.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".worklog"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"

# Project paths (relative to this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DATA_PATH = DATA_DIR / "dev-logs.json"


@dataclass
class WeComConfig:
    """WeCom (企业微信) application and callback credentials"""
    corp_id: str = ""
    agent_id: str = ""
    secret: str = ""
    token: str = ""
    encoding_aes_key: str = ""
    enabled: bool = False


@dataclass
class StoreConfig:
    """Record store configuration"""
    data_path: str = str(DEFAULT_DATA_PATH)


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 3000


@dataclass
class WorklogConfig:
    """Main Worklog configuration"""
    wecom: WeComConfig = field(default_factory=WeComConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


# Field name used by the UI / completeness report -> WeComConfig attribute
WECOM_FIELD_NAMES: Dict[str, str] = {
    "corpId": "corp_id",
    "agentId": "agent_id",
    "secret": "secret",
    "token": "token",
    "encodingAESKey": "encoding_aes_key",
}

_ENV_WECOM_MAP: Dict[str, str] = {
    "WECHAT_CORP_ID": "corp_id",
    "WECHAT_AGENT_ID": "agent_id",
    "WECHAT_SECRET": "secret",
    "WECHAT_TOKEN": "token",
    "WECHAT_ENCODING_AES_KEY": "encoding_aes_key",
}


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _parse_wecom_config(data: dict) -> WeComConfig:
    """Parse wecom section from config dict.

    Accepts both snake_case keys and the camelCase keys the UI stores
    (corpId, encodingAESKey, ...).
    """
    wecom_data = data.get("wecom", {})
    values = {}
    for ui_name, attr in WECOM_FIELD_NAMES.items():
        values[attr] = wecom_data.get(attr) or wecom_data.get(ui_name) or ""
    return WeComConfig(
        enabled=_parse_bool(wecom_data.get("enabled", False)),
        **values,
    )


def _parse_store_config(data: dict) -> StoreConfig:
    """Parse store section from config dict"""
    store_data = data.get("store", {})
    return StoreConfig(
        data_path=store_data.get("data_path", str(DEFAULT_DATA_PATH)),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server section from config dict"""
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 3000)),
    )


def load_config() -> WorklogConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (including a .env file in the working directory)
    2. Config file (~/.worklog/config.json)
    3. Default values
    """
    load_dotenv()
    config = WorklogConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.wecom = _parse_wecom_config(data)
            config.store = _parse_store_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    for env_var, attr in _ENV_WECOM_MAP.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.wecom, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("WECHAT_ENABLED"):
        config.wecom.enabled = _parse_bool(os.getenv("WECHAT_ENABLED"))

    if os.getenv("WORKLOG_DATA_PATH"):
        config.store.data_path = os.getenv("WORKLOG_DATA_PATH")
    if os.getenv("WORKLOG_PORT"):
        config.server.port = int(os.getenv("WORKLOG_PORT"))

    return config


def resolve_client_config(config: WorklogConfig, overrides: dict) -> WeComConfig:
    """
    Merge a client-supplied WeCom config under the server's configuration.

    Environment-sourced values always win; a client override only fills in
    (or replaces) values that came from the stored file or defaults.

    Args:
        config: Server configuration from load_config()
        overrides: Client config using UI field names (corpId, token, ...)

    Returns:
        The effective WeComConfig
    """
    resolved = WeComConfig(**{
        attr: getattr(config.wecom, attr)
        for attr in list(WECOM_FIELD_NAMES.values()) + ["enabled"]
    })

    for ui_name, attr in WECOM_FIELD_NAMES.items():
        if attr in config._env_sourced_keys:
            continue
        value = overrides.get(ui_name)
        if value:
            setattr(resolved, attr, str(value))

    if "enabled" in overrides and not os.getenv("WECHAT_ENABLED"):
        resolved.enabled = _parse_bool(overrides["enabled"])

    return resolved


def validate_wecom_config(
    wecom: WeComConfig,
    for_webhook: bool = False,
) -> Tuple[bool, List[str]]:
    """
    Check which required WeCom credentials are missing.

    Args:
        wecom: WeCom configuration to check
        for_webhook: Also require the callback credentials (token, encodingAESKey)

    Returns:
        (valid, missing) where missing lists UI field names in a fixed order
    """
    required = ["corpId", "agentId", "secret"]
    if for_webhook:
        required += ["token", "encodingAESKey"]

    missing = [name for name in required if not getattr(wecom, WECOM_FIELD_NAMES[name])]
    return len(missing) == 0, missing


def ensure_directories(config: Optional[WorklogConfig] = None) -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    if config is not None:
        Path(config.store.data_path).parent.mkdir(parents=True, exist_ok=True)
