from src.core.config import get_config
from src.core.docker_env import get_docker_engine_info
from src.core.logging import setup_logging

__all__ = ["get_config", "get_docker_engine_info", "setup_logging"]
