"""
Configuration management for Dice Wager.
Supports config.json with environment variable overrides.
All paths are resolved relative to the project root.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

# Project root directory (parent of 'dicewager' folder)
PROJECT_ROOT = Path(__file__).parent.parent


def get_env(key: str, default: str = None) -> Optional[str]:
    """Get environment variable with optional default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes", "on")


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


# ==================== Configuration Models ====================

class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    name: str = "Dice Wager Ledger"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class LedgerConfig(BaseModel):
    """Authoritative settlement rules used by the Ledger Service."""
    account_id: str = "player"
    starting_balance: float = 1000.0
    multipliers: List[int] = Field(default_factory=lambda: [1, 2, 3])
    # Die faces that win for each multiplier
    win_faces: Dict[int, List[int]] = Field(
        default_factory=lambda: {1: [4, 5, 6], 2: [5, 6], 3: [6]}
    )


class ClientConfig(BaseModel):
    """Settings for the player-side WagerEngine."""
    ledger_url: str = "http://127.0.0.1:5000"
    timeout_seconds: float = 10.0
    default_balance: float = 1000.0
    store_key: str = "diceGameBalance"
    quick_bet_fractions: List[float] = Field(
        default_factory=lambda: [0.25, 0.5, 0.75, 1.0]
    )


class RateLimitConfig(BaseModel):
    enabled: bool = True
    money_requests: str = "30/minute"  # rolls and resets
    api_requests: str = "60/minute"    # reads and verification


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_to_file: bool = False
    formatter: str = "color"


class PathsConfig(BaseModel):
    """All paths are relative to PROJECT_ROOT."""
    config_file: str = "config.json"
    database: str = "data/ledger.db"
    balance_store: str = "data/balance.json"
    log_file: str = "data/app.log"

    def get_config_path(self) -> Path:
        return PROJECT_ROOT / self.config_file

    def get_db_path(self) -> Path:
        return PROJECT_ROOT / self.database

    def get_balance_store_path(self) -> Path:
        return PROJECT_ROOT / self.balance_store

    def get_log_path(self) -> Path:
        return PROJECT_ROOT / self.log_file


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)


# ==================== Configuration Loading ====================

def load_config(config_path: Path = None) -> AppConfig:
    """
    Load configuration from config.json with environment variable overrides.
    Environment variables take precedence over config.json values.
    """
    if config_path is None:
        config_path = PROJECT_ROOT / "config.json"

    data = {}

    if config_path.exists():
        with open(config_path, "r") as f:
            data = json.load(f)

    # Apply environment variable overrides
    if get_env("SERVER_HOST"):
        data.setdefault("server", {})["host"] = get_env("SERVER_HOST")
    if get_env("SERVER_PORT"):
        data.setdefault("server", {})["port"] = get_env_int("SERVER_PORT", 5000)
    if get_env("DEBUG"):
        data.setdefault("server", {})["debug"] = get_env_bool("DEBUG")

    if get_env("LEDGER_STARTING_BALANCE"):
        data.setdefault("ledger", {})["starting_balance"] = get_env_float(
            "LEDGER_STARTING_BALANCE", 1000.0
        )

    if get_env("LEDGER_URL"):
        data.setdefault("client", {})["ledger_url"] = get_env("LEDGER_URL")
    if get_env("LEDGER_TIMEOUT"):
        data.setdefault("client", {})["timeout_seconds"] = get_env_float(
            "LEDGER_TIMEOUT", 10.0
        )

    if get_env("DB_PATH"):
        data.setdefault("paths", {})["database"] = get_env("DB_PATH")
    if get_env("BALANCE_STORE_PATH"):
        data.setdefault("paths", {})["balance_store"] = get_env("BALANCE_STORE_PATH")

    if get_env("LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = get_env("LOG_LEVEL")
    if get_env("LOG_TO_FILE"):
        data.setdefault("logging", {})["log_to_file"] = get_env_bool("LOG_TO_FILE")
    if get_env("LOG_FORMATTER"):
        data.setdefault("logging", {})["formatter"] = get_env("LOG_FORMATTER")

    if get_env("RATE_LIMIT_ENABLED"):
        data.setdefault("rate_limit", {})["enabled"] = get_env_bool("RATE_LIMIT_ENABLED", True)
    if get_env("RATE_LIMIT_MONEY_REQUESTS"):
        data.setdefault("rate_limit", {})["money_requests"] = get_env("RATE_LIMIT_MONEY_REQUESTS")
    if get_env("RATE_LIMIT_API_REQUESTS"):
        data.setdefault("rate_limit", {})["api_requests"] = get_env("RATE_LIMIT_API_REQUESTS")

    return AppConfig(**data)


def save_config(config: AppConfig, config_path: Path = None):
    """Save configuration to config.json."""
    if config_path is None:
        config_path = PROJECT_ROOT / "config.json"

    # Paths are environment specific, keep them out of the shared file
    data = config.model_dump(exclude={"paths"})

    with open(config_path, "w") as f:
        json.dump(data, f, indent=4)


# Global config instance
settings = load_config()
