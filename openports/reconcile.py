"""
Turns scan results plus user preferences into what gets shown.

The steps run in a fixed order: container-owned ports are removed first,
the remainder is split into hidden and visible, and only then is the text
filter applied to each half.
"""


def container_host_ports(containers):
    ports = set()
    for container in containers:
        ports |= container.host_ports
    return ports


def without_container_ports(ports, containers):
    docker_ports = container_host_ports(containers)
    return [p for p in ports if p.port not in docker_ports]


def matches_filter(record, filter_text, command_lines=None):
    if not filter_text:
        return True
    query = filter_text.lower()
    if query in record.process_name.lower():
        return True
    if query in str(record.port):
        return True
    cmdline = (command_lines or {}).get(record.port)
    return bool(cmdline) and query in cmdline.lower()


def reconcile(ports, containers, settings, filter_text="", command_lines=None,
              docker_available=True):
    """Return (visible, hidden) port lists."""
    if settings.show_docker_containers and docker_available:
        ports = without_container_ports(ports, containers)

    visible = []
    hidden = []
    for record in ports:
        if settings.is_port_hidden(record.process_name, record.port):
            hidden.append(record)
        else:
            visible.append(record)

    visible = [p for p in visible if matches_filter(p, filter_text, command_lines)]
    hidden = [p for p in hidden if matches_filter(p, filter_text, command_lines)]
    return visible, hidden


def visible_containers(containers, settings, docker_available=True):
    if not settings.show_docker_containers or not docker_available:
        return []
    return list(containers)
