"""
Utilities for obtaining free host ports for container bindings.
"""
import socket
import threading
from typing import Set


def get_free_port() -> int:
    """
    Asks the OS for a free ephemeral port on localhost.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        return s.getsockname()[1]


class PortAllocator:
    """
    Hands out OS-assigned host ports, never the same one twice while it is
    claimed. The port is released by the socket before the container binds
    it, so the claimed set keeps concurrent starts in one batch apart.
    """
    def __init__(self, max_attempts: int = 50):
        self.max_attempts = max_attempts
        self._claimed: Set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """
        Claims a free host port.

        :return: The claimed port.
        :raises RuntimeError: If no unclaimed port could be obtained.
        """
        with self._lock:
            for _ in range(self.max_attempts):
                port = get_free_port()
                if port not in self._claimed:
                    self._claimed.add(port)
                    return port
        raise RuntimeError(f"Could not find an unclaimed port after {self.max_attempts} attempts")

    def release(self, port: int) -> None:
        with self._lock:
            self._claimed.discard(port)

    @property
    def claimed(self) -> Set[int]:
        with self._lock:
            return set(self._claimed)
