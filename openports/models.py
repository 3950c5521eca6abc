from collections import namedtuple

SOCKET_IPV4 = "IPv4"
SOCKET_IPV6 = "IPv6"


class PortRecord(namedtuple("PortRecord", "port pid process_name user address socket_type")):
    """One listening TCP port and the process that owns it."""
    __slots__ = ()

    @property
    def url(self):
        return f"http://localhost:{self.port}"

    @property
    def display_name(self):
        return f"{self.process_name} :{self.port}"

    @property
    def detail(self):
        return f"PID {self.pid} - {self.user}"


class PortMapping(namedtuple("PortMapping", "host_port container_port proto host_ip")):
    """A published container port (host side -> container side)."""
    __slots__ = ()

    def __new__(cls, host_port, container_port, proto="tcp", host_ip="0.0.0.0"):
        return super().__new__(cls, host_port, container_port, proto, host_ip)

    @property
    def display(self):
        return f"{self.host_port} -> {self.container_port}/{self.proto}"

    @property
    def url(self):
        return f"http://localhost:{self.host_port}"


class ContainerRecord(namedtuple("ContainerRecord", "id name image ports status")):
    """A running container with at least one published port."""
    __slots__ = ()

    @property
    def is_running(self):
        return "up" in self.status.lower()

    @property
    def default_mapping(self):
        # first mapping is the one shown when the row is collapsed
        return self.ports[0] if self.ports else None

    @property
    def host_ports(self):
        return {m.host_port for m in self.ports}
