"""Logging configuration for the AssetWatch backend."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Union


@dataclass
class LoggerConfig:
    level: Union[int, str] = logging.INFO
    fmt: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(config: Optional[LoggerConfig] = None) -> Dict[str, logging.Logger]:
    cfg = config or LoggerConfig()
    level = logging.getLevelName(cfg.level.upper()) if isinstance(cfg.level, str) else cfg.level
    logging.basicConfig(level=level, format=cfg.fmt)
    return {
        "app": logging.getLogger("app"),
        "identity": logging.getLogger("app.identity"),
        "reconciler": logging.getLogger("app.reconciler"),
        "telemetry": logging.getLogger("telemetry_core"),
    }
