from gcecloud.observability.logger import logger

__all__ = ["logger"]
