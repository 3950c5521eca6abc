import argparse
import os
import sys
import time

from .log import debug_log
from .monitor import Monitor
from .settings import DEFAULTS, load_settings


def _get_app_version():
    try:
        v_file = os.path.join(os.path.dirname(__file__), "VERSION")
        with open(v_file) as f:
            return f.read().strip()
    except OSError:
        return "1.0.0"


def check_python_version():
    if sys.version_info < (3, 8):
        print("Python 3.8 or newer is required.")
        sys.exit(1)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="openports",
        description="List listening TCP ports and docker containers, and stop what owns them.",
    )
    parser.add_argument("--version", action="version", version=f"openports {_get_app_version()}")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("list", help="Show listening ports and containers (default)")
    p.add_argument("--filter", default="", help="Match process name, port or command line")
    p.add_argument("--hidden", action="store_true", help="Also show hidden ports")
    p.add_argument("--all", action="store_true", help="Include root and system-user processes")

    p = sub.add_parser("watch", help="Refresh continuously")
    p.add_argument("--interval", type=int, help="Seconds between scans")
    p.add_argument("--filter", default="")
    p.add_argument("--all", action="store_true")

    for name, help_text in (("term", "Send SIGTERM to the owner of PORT"),
                            ("kill", "Send SIGKILL to the owner of PORT")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("port", type=int)
        p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
        p.add_argument("--all", action="store_true")

    for name in ("hide", "unhide"):
        p = sub.add_parser(name, help=f"{name.capitalize()} PORT in the default listing")
        p.add_argument("port", type=int)

    p = sub.add_parser("docker", help="Stop, kill or restart a container")
    p.add_argument("action", choices=("stop", "kill", "restart"))
    p.add_argument("container", help="Container id or name")
    p.add_argument("-y", "--yes", action="store_true")

    p = sub.add_parser("config", help="Show or change a setting")
    p.add_argument("key", nargs="?", choices=sorted(DEFAULTS))
    p.add_argument("value", nargs="?")

    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["list"] + list(argv or []))
    return args


# --------------------------------------------------
# Output
# --------------------------------------------------
def format_ports(records, title):
    lines = [f"{title} ({len(records)})"]
    if not records:
        return lines
    lines.append(f"  {'PORT':>5}  {'PROCESS':<24} {'OWNER':<22} {'ADDRESS':<18} URL")
    for r in records:
        lines.append(f"  {r.port:>5}  {r.process_name[:24]:<24} {r.detail[:22]:<22} {r.address:<18} {r.url}")
    return lines


def format_containers(containers):
    lines = [f"Docker ({len(containers)})"]
    if not containers:
        return lines
    lines.append(f"  {'NAME':<24} {'IMAGE':<24} {'PORTS':<28} {'STATUS':<20} URL")
    for c in containers:
        mappings = ", ".join(m.display for m in c.ports)
        url = c.default_mapping.url if c.is_running else "-"
        lines.append(f"  {c.name[:24]:<24} {c.image[:24]:<24} {mappings:<28} {c.status[:20]:<20} {url}")
    return lines


def render(monitor, filter_text="", show_hidden=False):
    visible, hidden = monitor.view(filter_text)
    lines = format_ports(visible, "Ports")
    if show_hidden:
        lines += [""] + format_ports(hidden, "Hidden")
    elif hidden:
        lines.append(f"  ({len(hidden)} hidden, use --hidden to show)")
    if monitor.settings.show_docker_containers and monitor.docker.is_available:
        lines += [""] + format_containers(monitor.containers())
    for err in monitor.errors:
        lines.append(f"Error: {err}")
    return "\n".join(lines)


def prompt_confirm(title, message):
    try:
        answer = input(f"{title} {message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _always_yes(title, message):
    return True


# --------------------------------------------------
# Commands
# --------------------------------------------------
def cmd_list(monitor, args):
    monitor.refresh()
    if args.filter:
        for record in monitor.scanner.ports:
            monitor.fetch_command_line(record)
    print(render(monitor, args.filter, args.hidden))
    return 1 if monitor.scanner.last_error and not monitor.scanner.ports else 0


def cmd_watch(monitor, args):
    settings = monitor.settings
    if args.interval is not None:
        try:
            settings.set("refresh_interval", args.interval)
        except ValueError as e:
            print(e)
            return 2
    interval = settings.refresh_interval_seconds
    if interval is None:
        print("Refresh interval is manual; pass --interval N.")
        return 2

    monitor.refresh()
    monitor.start()
    try:
        while True:
            print("\033[2J\033[H" + render(monitor, args.filter), flush=True)
            time.sleep(interval)
            if settings.show_docker_containers:
                monitor.docker.refresh()
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()
    return 0


def cmd_signal(monitor, args):
    monitor.scanner.scan()
    record = monitor.find_port(args.port)
    if record is None:
        print(f"No listening process on port {args.port}.")
        return 1

    confirm = _always_yes if args.yes else prompt_confirm
    if args.command == "term":
        result = monitor.terminate_port(record, confirm)
    else:
        result = monitor.kill_port(record, confirm)

    if result is None:
        print("Cancelled.")
        return 1
    if not result.succeeded:
        print(result.error_message)
        return 1
    print(f"Sent SIG{'TERM' if args.command == 'term' else 'KILL'} to {record.process_name} (PID {record.pid}).")
    return 0


def cmd_hide(monitor, args):
    monitor.scanner.scan()
    record = monitor.find_port(args.port)
    if record is None:
        print(f"No listening process on port {args.port}.")
        return 1
    if args.command == "hide":
        monitor.hide_port(record)
    else:
        monitor.unhide_port(record)
    print(f"{args.command.capitalize()}: {record.display_name}")
    return 0


def cmd_docker(monitor, args):
    monitor.docker.refresh()
    if not monitor.docker.is_available:
        print("Docker is not available.")
        return 1
    container = monitor.find_container(args.container)
    if container is None:
        print(f"No container '{args.container}' with published ports.")
        return 1

    confirm = _always_yes if args.yes else prompt_confirm
    if args.action == "stop":
        ok = monitor.stop_container(container, confirm)
    elif args.action == "kill":
        ok = monitor.kill_container(container, confirm)
    else:
        ok = monitor.restart_container(container)

    if ok is None:
        print("Cancelled.")
        return 1
    if not ok:
        print(monitor.docker.last_error)
        return 1
    print(f"{args.action.capitalize()}: {container.name}")
    return 0


def cmd_config(monitor, args):
    settings = monitor.settings
    if args.key is None:
        for key, value in sorted(settings.as_dict().items()):
            print(f"{key} = {value}")
        print(f"hidden_ports = {', '.join(sorted(settings.hidden_ports)) or '-'}")
        return 0
    if args.value is None:
        print(settings.get(args.key))
        return 0
    try:
        settings.set(args.key, args.value)
    except ValueError as e:
        print(f"Invalid value for {args.key}: {e}")
        return 2
    if not settings.save():
        print("Could not save settings.")
        return 1
    print(f"{args.key} = {settings.get(args.key)}")
    return 0


COMMANDS = {
    "list": cmd_list,
    "watch": cmd_watch,
    "term": cmd_signal,
    "kill": cmd_signal,
    "hide": cmd_hide,
    "unhide": cmd_hide,
    "docker": cmd_docker,
    "config": cmd_config,
}


def main(argv=None, settings=None, runner=None):
    args = parse_args(argv)
    settings = settings or load_settings()
    if getattr(args, "all", False):
        # for this run only, not saved
        settings.set("show_system_processes", True)

    monitor = Monitor(settings, runner) if runner else Monitor(settings)
    debug_log(f"CLI: {args.command}")
    try:
        return COMMANDS[args.command](monitor, args)
    finally:
        monitor.stop()


def cli_entry():
    """terminal command 'openports' entry point"""
    check_python_version()
    sys.exit(main(sys.argv[1:]))
