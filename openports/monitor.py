import time
from concurrent.futures import ThreadPoolExecutor

from . import process
from .docker import DockerService
from .log import debug_log
from .reconcile import reconcile, visible_containers
from .scanner import PortScanner
from .shell import run_command

ACTION_SETTLE_DELAY = 0.5  # give a signalled process time to release its port
SCAN_WAIT = 30


class Monitor:
    """
    Ties the port scanner, the docker service and the settings together.

    Destructive actions go through ``confirm(title, message) -> bool`` when
    the settings ask for confirmation. Without a confirm callback such
    actions are cancelled and return None.
    """

    def __init__(self, settings, runner=run_command, scanner=None, docker=None,
                 settle_delay=ACTION_SETTLE_DELAY):
        self.settings = settings
        self.runner = runner
        self.scanner = scanner or PortScanner(settings, runner)
        self.docker = docker or DockerService(runner)
        self.settle_delay = settle_delay
        self.command_lines = {}  # port -> full command line
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="openports")

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self):
        self.scanner.start_auto_refresh()

    def stop(self):
        self.scanner.stop_auto_refresh()
        self._executor.shutdown(wait=False)

    def refresh(self):
        """Scan ports and, if enabled, containers. Both run concurrently."""
        futures = [self._executor.submit(self.scanner.scan)]
        if self.settings.show_docker_containers:
            futures.append(self._executor.submit(self.docker.refresh))
        for future in futures:
            future.result()

    # ------------------------------------------------------------------
    # presentation
    # ------------------------------------------------------------------
    def view(self, filter_text=""):
        """(visible, hidden) port lists after reconciliation."""
        return reconcile(
            self.scanner.ports,
            self.docker.containers,
            self.settings,
            filter_text=filter_text,
            command_lines=self.command_lines,
            docker_available=self.docker.is_available,
        )

    def containers(self):
        return visible_containers(self.docker.containers, self.settings, self.docker.is_available)

    @property
    def errors(self):
        return [e for e in (self.scanner.last_error, self.docker.last_error) if e]

    def fetch_command_line(self, record):
        cmdline = process.get_command_line(record.pid, self.runner)
        if cmdline:
            self.command_lines[record.port] = cmdline
        return cmdline

    def find_port(self, port):
        for record in self.scanner.ports:
            if record.port == port:
                return record
        return None

    def find_container(self, ref):
        if not ref:
            return None
        for container in self.docker.containers:
            if ref in (container.id, container.name) or container.id.startswith(ref):
                return container
        return None

    # ------------------------------------------------------------------
    # hidden ports
    # ------------------------------------------------------------------
    def hide_port(self, record):
        self.settings.hide_port(record.process_name, record.port)
        self.settings.save()

    def unhide_port(self, record):
        self.settings.unhide_port(record.process_name, record.port)
        self.settings.save()

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    def _confirmed(self, required, confirm, title, message):
        if not required:
            return True
        if confirm is None:
            debug_log(f"ACTION: '{title}' needs confirmation, none available")
            return False
        return bool(confirm(title, message))

    def _signal_port(self, record, action, confirm, title, message):
        if not self._confirmed(self.settings.confirm_before_kill, confirm, title, message):
            return None
        result = action(record.pid, self.runner)
        if result.succeeded:
            time.sleep(self.settle_delay)
            self.scanner.wait_idle(SCAN_WAIT)
            self.scanner.scan()
        return result

    def terminate_port(self, record, confirm=None):
        return self._signal_port(
            record, process.terminate, confirm,
            "Terminate Process?",
            f"This will send SIGTERM to {record.process_name} (PID {record.pid}) on port {record.port}.",
        )

    def kill_port(self, record, confirm=None):
        return self._signal_port(
            record, process.kill, confirm,
            "Kill Process?",
            f"This will forcefully kill {record.process_name} (PID {record.pid}) on port "
            f"{record.port}. Unsaved data may be lost.",
        )

    def stop_container(self, container, confirm=None):
        if not self._confirmed(self.settings.confirm_before_docker_stop, confirm,
                               "Stop Container?",
                               f"This will stop the container '{container.name}'."):
            return None
        return self.docker.stop(container.id)

    def kill_container(self, container, confirm=None):
        if not self._confirmed(self.settings.confirm_before_docker_stop, confirm,
                               "Kill Container?",
                               f"This will forcefully kill the container '{container.name}'. "
                               "Data may be lost."):
            return None
        return self.docker.kill(container.id)

    def restart_container(self, container):
        return self.docker.restart(container.id)
