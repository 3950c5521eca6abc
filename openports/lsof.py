"""
Parsing of ``lsof -iTCP -sTCP:LISTEN -P -n`` and batch process-name lookup.

Sample input::

    COMMAND     PID      USER   FD   TYPE     DEVICE SIZE/OFF NODE NAME
    node      12345    martin   22u  IPv4 0x12345678      0t0  TCP *:3000 (LISTEN)
    postgres   5432 _postgres    5u  IPv6 0x09876543      0t0  TCP [::1]:5432 (LISTEN)
"""
import os
import re

from .log import debug_log
from .models import SOCKET_IPV4, SOCKET_IPV6, PortRecord

LSOF_COMMAND = "lsof -iTCP -sTCP:LISTEN -P -n"
PS_NAMES_TIMEOUT = 10

MIN_COLUMNS = 9
SYSTEM_USERS = (
    "root",
    "_postgres",
    "_mysql",
    "_www",
    "_windowserver",
    "_spotlight",
    "_mdnsresponder",
)

_ESCAPE_RE = re.compile(r"\\x([0-9A-Fa-f]{2})")
_DIGITS_RE = re.compile(r"\d+")


def decode_escapes(token):
    """lsof prints unprintable bytes as \\xNN (e.g. node\\x20server)."""
    return _ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), token)


def extract_port(name):
    """
    Port number from an lsof NAME value, or None.

    "*:3000" -> 3000, "[::1]:5432" -> 5432, "localhost:8080" -> 8080
    """
    idx = name.rfind(":")
    if idx == -1:
        return None
    m = _DIGITS_RE.match(name, idx + 1)
    if not m:
        return None
    port = int(m.group(0))
    if not 0 < port <= 65535:
        return None
    return port


def is_system_user(user):
    user = user.lower()
    return user.startswith("_") or user in SYSTEM_USERS


def parse_lsof(output, show_system_processes=False):
    """Turn raw lsof output into PortRecords, one per port, sorted by port."""
    records = []
    seen_ports = set()  # IPv4 and IPv6 listeners on the same port show once

    # skip header
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < MIN_COLUMNS:
            continue

        try:
            pid = int(parts[1])
        except ValueError:
            continue
        if pid <= 0:
            continue

        user = parts[2]
        socket_type = parts[4]
        if socket_type not in (SOCKET_IPV4, SOCKET_IPV6):
            continue
        # NAME is followed by the "(LISTEN)" state column
        address = parts[-2]

        port = extract_port(address)
        if port is None:
            continue

        if not show_system_processes and is_system_user(user):
            continue

        if port in seen_ports:
            continue
        seen_ports.add(port)

        records.append(PortRecord(
            port=port,
            pid=pid,
            process_name=decode_escapes(parts[0]),
            user=user,
            address=address,
            socket_type=socket_type,
        ))

    records.sort(key=lambda r: r.port)
    return records


def parse_ps_names(output):
    """Map pid -> executable name from ``ps -o pid=,comm=`` output."""
    names = {}
    for line in output.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2 or not parts[0].isdigit():
            continue
        # comm may be a full path on macOS
        name = os.path.basename(parts[1].strip().rstrip("/"))
        if name:
            names[int(parts[0])] = name
    return names


def resolve_process_names(records, runner):
    """
    Replace lsof's truncated command names with the real executable names.

    All PIDs are looked up in a single ps call. Records whose PID is missing
    from the ps output keep the name lsof gave them.
    """
    if not records:
        return records

    pids = sorted({r.pid for r in records})
    result = runner(f"ps -p {','.join(str(p) for p in pids)} -o pid=,comm=", PS_NAMES_TIMEOUT)
    # ps exits non-zero when some of the pids are gone; whatever it printed is
    # still valid for the others.
    names = parse_ps_names(result.stdout)
    if not names:
        if not result.succeeded:
            debug_log(f"SCAN: Name lookup failed: {result.stderr or result.exit_code}")
        return records

    return [r._replace(process_name=names[r.pid]) if r.pid in names else r for r in records]
