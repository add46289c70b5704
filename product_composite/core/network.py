# product_composite/core/network.py
import socket
from functools import lru_cache

from product_composite.core.config import get_settings


@lru_cache
def get_service_address() -> str:
    """
    Address of this node as reported in responses: "<hostname>/<ip>:<port>".
    """
    port = get_settings().SERVER_PORT
    hostname = socket.gethostname()
    try:
        ip = socket.gethostbyname(hostname)
    except OSError:
        ip = "unknown"
    return f"{hostname}/{ip}:{port}"
