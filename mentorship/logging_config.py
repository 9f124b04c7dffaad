"""
Logging setup shared by every entry point
"""
import logging

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging once; quiet the HTTP client's request lines"""
    logging.basicConfig(format=LOG_FORMAT, level=level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
