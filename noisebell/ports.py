"""Local TCP port discovery."""

from __future__ import annotations

import socket

from noisebell.errors import NoAvailablePortError
from noisebell.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_PORT_SPAN = 1000
_MAX_PORT = 65535


def is_port_available(port: int, host: str = "127.0.0.1") -> bool:
    """Check a port by binding to it and releasing it immediately.

    The address family follows ``host``, so IPv6 binds such as ``::1`` work.
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    except socket.gaierror:
        return False

    family, socktype, proto, _, sockaddr = infos[0]
    with socket.socket(family, socktype, proto) as sock:
        try:
            sock.bind(sockaddr)
        except OSError:
            return False
    return True


def find_available_port(
    start: int, host: str = "127.0.0.1", span: int = DEFAULT_PORT_SPAN
) -> int:
    """Return the first bindable port in ``[start, start + span)``.

    The check releases the port before returning, so another process may
    take it before the caller binds. Callers treat a failed bind as fatal.
    """
    end = start + span
    log.debug("port_search_started", start=start, end=end, host=host)
    if not 1 <= start <= _MAX_PORT:
        raise NoAvailablePortError(start, end)

    for port in range(start, min(end, _MAX_PORT + 1)):
        if is_port_available(port, host):
            log.info("port_found", port=port)
            return port

    raise NoAvailablePortError(start, end)
