"""
Host port allocation for challenge instances.

Ports are handed out from the operator-configured ranges. A port is only
returned when it is not held by another running instance AND a bind on the
probe host succeeds, so processes outside the launcher holding a port are
skipped too. Nothing is reserved here: the caller persists the chosen port.
"""

import json
import logging
import socket
from collections import namedtuple

import eventlet

from services.errors import PortsExhaustedError, ValidationError

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535
DEFAULT_PROBE_HOST = '127.0.0.1'
DEFAULT_SUMMARY_CONCURRENCY = 40

PortRange = namedtuple('PortRange', ['start', 'end'])


def _as_port(value, field):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'port_ranges: {field} must be an integer')
    return value


def parse_port_ranges(raw):
    """
    Validate a port range list.

    Accepts a JSON string or a list of ``{"start": int, "end": int}`` mappings
    (``[start, end]`` pairs are accepted as well).

    Returns:
        list of PortRange in the configured order

    Raises:
        ValidationError: on malformed input or a range outside 1..65535
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError('port_ranges is not valid JSON')

    if not isinstance(raw, list) or not raw:
        raise ValidationError('port_ranges must be a non-empty list')

    ranges = []
    for item in raw:
        if isinstance(item, dict):
            if 'start' not in item or 'end' not in item:
                raise ValidationError('port_ranges entries need start and end')
            start, end = item['start'], item['end']
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            start, end = item
        else:
            raise ValidationError('port_ranges entries must be {start, end} objects')

        start = _as_port(start, 'start')
        end = _as_port(end, 'end')
        if start < MIN_PORT or end > MAX_PORT or start > end:
            raise ValidationError(
                f'Invalid port range {start}-{end}: '
                f'expected {MIN_PORT} <= start <= end <= {MAX_PORT}'
            )
        ranges.append(PortRange(start, end))

    return ranges


def serialize_port_ranges(ranges):
    return json.dumps([{'start': r.start, 'end': r.end} for r in ranges])


def is_port_available(port, host=DEFAULT_PROBE_HOST):
    """Bind-and-release probe: True when the OS lets us listen on the port"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        # TIME_WAIT leftovers of a stopped instance do not make a port busy
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
            sock.listen(1)
        except OSError:
            return False
    return True


def iter_range_ports(ranges):
    """Yield every port of every range in configured order, ascending"""
    for port_range in ranges:
        for port in range(port_range.start, port_range.end + 1):
            yield port


def find_available_port(ranges, reserved, probe=is_port_available):
    """
    Pick the first unreserved, bindable port.

    Args:
        ranges: ordered list of PortRange
        reserved: set of ports held by running instances
        probe: callable(port) -> bool

    Raises:
        PortsExhaustedError: when every port is reserved or unbindable
    """
    for port in iter_range_ports(ranges):
        if port in reserved:
            continue
        if probe(port):
            return port
        logger.debug(f"Port {port} is unreserved but not bindable, skipping")

    raise PortsExhaustedError()


def get_port_summary(ranges, reserved=frozenset(), probe=is_port_available,
                     concurrency=DEFAULT_SUMMARY_CONCURRENCY):
    """
    Count free ports across all ranges.

    Every distinct port is probed once, ``concurrency`` at a time. A probe
    that raises counts as "not free" and does not abort the scan.

    Returns:
        dict: {'free': int, 'total': int}
    """
    ports = sorted(set(iter_range_ports(ranges)))

    def check(port):
        if port in reserved:
            return False
        try:
            return bool(probe(port))
        except Exception as e:
            logger.warning(f"Port probe failed for {port}: {e}")
            return False

    pool = eventlet.GreenPool(max(1, concurrency))
    free = sum(1 for ok in pool.imap(check, ports) if ok)

    return {'free': free, 'total': len(ports)}
