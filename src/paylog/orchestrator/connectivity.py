"""Network reachability probe."""
import socket

from ..utils.logger import get_logger

logger = get_logger()


class ConnectivityMonitor:
    """Reports whether the network is reachable by opening a TCP connection."""

    def __init__(self, host: str = "8.8.8.8", port: int = 53, timeout: float = 3.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_online(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False


class StaticConnectivity:
    """Fixed connectivity answer, for a known-offline or known-online setup."""

    def __init__(self, online: bool = True):
        self.online = online

    def is_online(self) -> bool:
        return self.online
