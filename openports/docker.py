"""
Docker containers with published ports.

Talks to the docker CLI only; nothing here needs the Docker SDK. Output of
``docker ps --format '{{.ID}}|{{.Names}}|{{.Image}}|{{.Ports}}|{{.Status}}'``
looks like::

    abc123def456|my-postgres|postgres:15|0.0.0.0:5432->5432/tcp, :::5432->5432/tcp|Up 2 hours
    def456ghi789|worker|myapp:latest|8080/tcp|Up 5 minutes
"""
import re
import threading

from .log import debug_log
from .models import ContainerRecord, PortMapping
from .shell import run_command

DOCKER_PS_FORMAT = "{{.ID}}|{{.Names}}|{{.Image}}|{{.Ports}}|{{.Status}}"
FIELD_SEP = "|"
ENTRY_SEP = ", "

INFO_TIMEOUT = 5
PS_TIMEOUT = 10
STOP_TIMEOUT = 30
KILL_TIMEOUT = 10  # kill is the escape hatch for a hung stop, keep it short
RESTART_TIMEOUT = 30
REFRESH_WAIT = 30

_CONTAINER_REF_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_PROTO_RE = re.compile(r"^\w+$")


def is_valid_container_ref(ref):
    return bool(ref) and bool(_CONTAINER_REF_RE.match(ref))


def _port_range(text):
    """'3000' -> [3000], '8000-8002' -> [8000, 8001, 8002], junk -> None."""
    text = text.strip()
    start, sep, end = text.partition("-")
    if not start.isdigit() or (sep and not end.isdigit()):
        return None
    first = int(start)
    last = int(end) if sep else first
    if not 0 < first <= last <= 65535:
        return None
    return list(range(first, last + 1))


def parse_ports_string(ports):
    """
    Parse the Ports column of docker ps into PortMappings.

    "0.0.0.0:3000->3000/tcp"                    -> one mapping
    "0.0.0.0:8080->80/tcp, :::8080->80/tcp"     -> one mapping (IPv6 twin dropped)
    "3000/tcp"                                  -> nothing (exposed, not published)
    """
    mappings = []
    seen = set()
    for entry in ports.split(ENTRY_SEP):
        entry = entry.strip()
        if "->" not in entry:
            continue

        host, _, target = entry.partition("->")
        container_side, _, proto = target.partition("/")
        proto = proto.strip() or "tcp"
        if not _PROTO_RE.match(proto):
            continue

        if ":" in host:
            host_ip, _, host_side = host.rpartition(":")
            host_ip = host_ip.strip("[]") or "0.0.0.0"
        else:
            host_ip, host_side = "0.0.0.0", host

        host_ports = _port_range(host_side)
        container_ports = _port_range(container_side)
        if not host_ports or not container_ports or len(host_ports) != len(container_ports):
            continue

        for host_port, container_port in zip(host_ports, container_ports):
            key = (host_port, container_port, proto)
            if key in seen:
                continue
            seen.add(key)
            mappings.append(PortMapping(host_port, container_port, proto, host_ip))
    return mappings


def parse_docker_output(output):
    """Containers with at least one published port, sorted by name."""
    containers = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = line.split(FIELD_SEP)
        if len(fields) < 5:
            continue

        container_id, name, image, ports, status = fields[:5]
        mappings = parse_ports_string(ports)
        if not mappings:
            continue

        containers.append(ContainerRecord(
            id=container_id.strip(),
            name=name.strip(),
            image=image.strip(),
            ports=tuple(mappings),
            status=status.strip(),
        ))

    # sorted() is stable, equal names keep docker's order
    return sorted(containers, key=lambda c: c.name)


class DockerService:
    """Discovers running containers and stops, kills or restarts them."""

    def __init__(self, runner=run_command):
        self.runner = runner

        self.containers = []
        self.is_available = False
        self.is_refreshing = False
        self.last_error = None

        self._cond = threading.Condition()

    def check_availability(self):
        result = self.runner("docker info 2>/dev/null", INFO_TIMEOUT)
        if result.succeeded != self.is_available:
            debug_log(f"DOCKER: Available = {result.succeeded}")
        self.is_available = result.succeeded
        return self.is_available

    def refresh(self):
        """
        Re-read the container list.

        Returns False without doing anything while another refresh is in
        flight. If docker is not available the list is cleared; if the
        listing fails the previous list is kept and last_error is set.
        """
        with self._cond:
            if self.is_refreshing:
                return False
            self.is_refreshing = True
            self.last_error = None

        try:
            if not self.check_availability():
                self.containers = []
                return True

            result = self.runner(f"docker ps --format '{DOCKER_PS_FORMAT}'", PS_TIMEOUT)
            if result.succeeded:
                self.containers = parse_docker_output(result.stdout)
                debug_log(f"DOCKER: {len(self.containers)} containers with published ports")
            else:
                self.last_error = result.stderr or "Failed to list containers"
                debug_log(f"DOCKER: ps failed: {self.last_error}")
        except Exception as e:
            self.last_error = f"Failed to list containers: {e}"
            debug_log(f"DOCKER: Exception - {e}")
        finally:
            with self._cond:
                self.is_refreshing = False
                self._cond.notify_all()
        return True

    def wait_idle(self, timeout=None):
        with self._cond:
            return self._cond.wait_for(lambda: not self.is_refreshing, timeout)

    def stop(self, container_id):
        return self._lifecycle("stop", container_id, STOP_TIMEOUT)

    def kill(self, container_id):
        return self._lifecycle("kill", container_id, KILL_TIMEOUT)

    def restart(self, container_id):
        return self._lifecycle("restart", container_id, RESTART_TIMEOUT)

    def _lifecycle(self, action, container_id, timeout):
        if not is_valid_container_ref(container_id):
            self.last_error = f"Invalid container id: {container_id!r}"
            return False

        debug_log(f"DOCKER: {action} {container_id}")
        result = self.runner(f"docker {action} {container_id}", timeout)
        if not result.succeeded:
            self.last_error = result.stderr or f"Failed to {action} container {container_id}"
            debug_log(f"DOCKER: {action} {container_id} failed: {self.last_error}")
            return False

        # a refresh that started before the action would publish stale data
        self.wait_idle(REFRESH_WAIT)
        self.refresh()
        return True
