"""
Configuration Management for Brain

Loads configuration from ~/.brain/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("brain.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".brain"
CONFIG_PATH = CONFIG_DIR / "config.json"
LOGS_DIR = CONFIG_DIR / "logs"
DATA_DIR = CONFIG_DIR / "data"


@dataclass
class StorageConfig:
    """Row store backend"""
    backend: str = "sqlite"  # "sqlite" or "memory"
    data_dir: str = str(DATA_DIR)  # holds brain.db


@dataclass
class LLMConfig:
    """Classification collaborator (LLM) configuration"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    timeout: float = 15.0


@dataclass
class TriageConfig:
    """Triage policy"""
    review_threshold: float = 0.8  # inclusive: confidence >= threshold may auto-file
    default_domain: str = "General"  # grouping used when a new project has no domain match
    classifier: str = "llm"  # "llm" or "rules"


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class BrainConfig:
    """Main Brain configuration"""
    storage: StorageConfig = field(default_factory=StorageConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    triage: TriageConfig = field(default_factory=TriageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    user_id: str = ""
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_storage_config(data: dict) -> StorageConfig:
    storage_data = data.get("storage", {})
    return StorageConfig(
        backend=storage_data.get("backend", "sqlite"),
        data_dir=storage_data.get("data_dir", str(DATA_DIR)),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        timeout=float(llm_data.get("timeout", 15.0)),
    )


def _parse_triage_config(data: dict) -> TriageConfig:
    """Parse triage section; the threshold is clamped into [0, 1]"""
    triage_data = data.get("triage", {})
    threshold = float(triage_data.get("review_threshold", 0.8))
    return TriageConfig(
        review_threshold=min(max(threshold, 0.0), 1.0),
        default_domain=triage_data.get("default_domain", "General"),
        classifier=triage_data.get("classifier", "llm"),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    server_data = data.get("server", {})
    return ServerConfig(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 8080)),
    )


def load_config() -> BrainConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.brain/config.json)
    3. Default values
    """
    config = BrainConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.storage = _parse_storage_config(data)
            config.llm = _parse_llm_config(data)
            config.triage = _parse_triage_config(data)
            config.server = _parse_server_config(data)
            config.user_id = data.get("user_id", "")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("BRAIN_STORAGE"):
        config.storage.backend = os.getenv("BRAIN_STORAGE")
    if os.getenv("BRAIN_DATA_DIR"):
        config.storage.data_dir = os.getenv("BRAIN_DATA_DIR")
    if os.getenv("BRAIN_REVIEW_THRESHOLD"):
        threshold = float(os.getenv("BRAIN_REVIEW_THRESHOLD"))
        config.triage.review_threshold = min(max(threshold, 0.0), 1.0)
    if os.getenv("BRAIN_DEFAULT_DOMAIN"):
        config.triage.default_domain = os.getenv("BRAIN_DEFAULT_DOMAIN")
    if os.getenv("BRAIN_CLASSIFIER"):
        config.triage.classifier = os.getenv("BRAIN_CLASSIFIER")
    if os.getenv("BRAIN_USER_ID"):
        config.user_id = os.getenv("BRAIN_USER_ID")
    if os.getenv("BRAIN_PORT"):
        config.server.port = int(os.getenv("BRAIN_PORT"))

    # LLM env var overrides (track env-sourced keys so they are never saved)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "BRAIN_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: BrainConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "timeout": config.llm.timeout,
    }
    for key in ("anthropic_api_key", "openai_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "storage": {
            "backend": config.storage.backend,
            "data_dir": config.storage.data_dir,
        },
        "llm": llm_section,
        "triage": {
            "review_threshold": config.triage.review_threshold,
            "default_domain": config.triage.default_domain,
            "classifier": config.triage.classifier,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
        "user_id": config.user_id,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories(config: BrainConfig = None) -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    if config is not None and config.storage.backend == "sqlite":
        Path(config.storage.data_dir).mkdir(parents=True, exist_ok=True)
