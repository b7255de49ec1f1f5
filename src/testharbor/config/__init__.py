from testharbor.config.environment import Environment
from testharbor.config.logging_config import configure_logging, get_logger

__all__ = ["Environment", "configure_logging", "get_logger"]
