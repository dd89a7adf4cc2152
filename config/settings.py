"""
Configuration loader for topic_queue.
Reads settings from a YAML file with environment variable substitution.

Example settings.yaml:
    app_name: billing-worker
    redis:
      url: "redis://${REDIS_HOST}:6379/0"
      max_connections: 20
    queue:
      store_backend: redis          # "memory" | "redis"
      rate_limit_period_ms: 200     # poll period of each consumer loop
    log:
      level: info                   # trace|debug|info|warn|error|fatal
      json: false
      filename: worker.log          # optional rotating file output
      dir: ./log
      max_bytes: 67108864
    stores:                         # extra named redis stores
      reports:
        url: "redis://reports:6379/0"
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv


@dataclass
class RedisConfig:
    url: str = "redis://localhost:6379"
    max_connections: int = 20


@dataclass
class QueueConfig:
    store_backend: str = "memory"       # "memory" for dev, "redis" for production
    rate_limit_period_ms: int = 200     # consumer poll period, both loops


@dataclass
class LogConfig:
    level: str = "info"
    json: bool = False
    dir: str = "./log"                  # used only when filename is set
    filename: str = ""                  # empty: console only
    max_bytes: int = 1 << 26            # rotate at 64 MiB
    backup_count: int = 5


@dataclass
class Settings:
    app_name: str = "topic-queue"
    redis: RedisConfig = field(default_factory=RedisConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    log: LogConfig = field(default_factory=LogConfig)
    stores: dict[str, RedisConfig] = field(default_factory=dict)   # extra named redis stores


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from YAML file. A missing file yields the defaults."""
    load_dotenv()

    if config_path is None:
        config_path = os.environ.get(
            "TOPIC_QUEUE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if not Path(config_path).exists():
        return settings

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    raw = _process_values(raw)

    settings.app_name = raw.get("app_name", settings.app_name)

    if "redis" in raw:
        r = raw["redis"] or {}
        settings.redis = RedisConfig(
            url=r.get("url", settings.redis.url),
            max_connections=int(r.get("max_connections", settings.redis.max_connections)),
        )

    if "queue" in raw:
        q = raw["queue"] or {}
        settings.queue = QueueConfig(
            store_backend=q.get("store_backend", settings.queue.store_backend),
            rate_limit_period_ms=int(q.get("rate_limit_period_ms", settings.queue.rate_limit_period_ms)),
        )

    if "log" in raw:
        lg = raw["log"] or {}
        settings.log = LogConfig(
            level=str(lg.get("level", settings.log.level)),
            json=bool(lg.get("json", settings.log.json)),
            dir=str(lg.get("dir", settings.log.dir)),
            filename=str(lg.get("filename", settings.log.filename)),
            max_bytes=int(lg.get("max_bytes", settings.log.max_bytes)),
            backup_count=int(lg.get("backup_count", settings.log.backup_count)),
        )

    if "stores" in raw:
        for name, st in (raw["stores"] or {}).items():
            st = st or {}
            settings.stores[name] = RedisConfig(
                url=st.get("url", RedisConfig.url),
                max_connections=int(st.get("max_connections", RedisConfig.max_connections)),
            )

    return settings
