from typing import Iterable
from core.types import Port

DEFAULT_PORT_BASE = 10000

def next_free_port(occupied: Iterable[Port], base: Port = DEFAULT_PORT_BASE) -> Port:
    """
    Return the smallest port >= base that is not in ``occupied``.

    Ports below ``base`` are ignored. An empty set yields ``base``.
    """
    candidate = base
    for port in sorted(set(occupied)):
        if port < candidate:
            continue
        if port > candidate:
            break
        candidate += 1
    return candidate
