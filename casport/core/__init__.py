"""
casport core: configuration, environment, logging and exceptions.
"""

from casport.core.config import CasportConfig, configure, get_config
from casport.core.env import EnvManager, get_env, load_env
from casport.core.exceptions import (
    CasportError,
    EngineStateError,
    MissingDependencyError,
    QueueStateError,
)
from casport.core.logger import configure_default_logging, get_logger, set_logger

__all__ = [
    "CasportConfig",
    "CasportError",
    "EngineStateError",
    "EnvManager",
    "MissingDependencyError",
    "QueueStateError",
    "configure",
    "configure_default_logging",
    "get_config",
    "get_env",
    "get_logger",
    "load_env",
    "set_logger",
]
