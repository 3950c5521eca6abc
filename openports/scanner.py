import threading

from .log import debug_log
from .lsof import LSOF_COMMAND, parse_lsof, resolve_process_names
from .shell import run_command

LSOF_TIMEOUT = 10


class RefreshTimer(threading.Thread):
    """Calls ``callback`` every ``interval`` seconds until cancelled.

    Ticks run one after another on this thread, so a slow callback delays the
    next tick instead of overlapping with it.
    """

    def __init__(self, interval, callback, name="RefreshTimer"):
        super().__init__(daemon=True, name=name)
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def run(self):
        while not self._cancelled.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                debug_log(f"TIMER: {self.name} tick failed: {e}")


class PortScanner:
    """Keeps the list of listening ports up to date."""

    def __init__(self, settings, runner=run_command):
        self.settings = settings
        self.runner = runner

        self.ports = []
        self.is_scanning = False
        self.last_error = None

        self._cond = threading.Condition()
        self._timer = None
        self._auto_refresh = False
        settings.subscribe(self._on_settings_changed)

    # ------------------------------------------------------------------
    # scanning
    # ------------------------------------------------------------------
    def scan(self):
        """
        Run one scan cycle: lsof, parse, resolve names, publish.

        Returns False without doing anything when another scan is already in
        flight. A failed lsof run keeps the previous ports and sets
        last_error.
        """
        with self._cond:
            if self.is_scanning:
                return False
            self.is_scanning = True
            self.last_error = None

        try:
            result = self.runner(LSOF_COMMAND, LSOF_TIMEOUT)
            if result.succeeded:
                records = parse_lsof(result.stdout, self.settings.show_system_processes)
                records = resolve_process_names(records, self.runner)
                self.ports = records
                debug_log(f"SCAN: {len(records)} listening ports")
            else:
                self.last_error = result.stderr or "Failed to scan ports"
                debug_log(f"SCAN: lsof failed ({result.exit_code}): {self.last_error}")
        except Exception as e:
            self.last_error = f"Failed to scan ports: {e}"
            debug_log(f"SCAN: Exception - {e}")
        finally:
            with self._cond:
                self.is_scanning = False
                self._cond.notify_all()
        return True

    def wait_idle(self, timeout=None):
        """Block until no scan is in flight. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self.is_scanning, timeout)

    # ------------------------------------------------------------------
    # auto refresh
    # ------------------------------------------------------------------
    def start_auto_refresh(self):
        self._auto_refresh = True
        self._setup_auto_refresh()

    def stop_auto_refresh(self):
        self._auto_refresh = False
        self._cancel_timer()

    @property
    def auto_refresh_interval(self):
        """Interval of the armed timer, None when disarmed."""
        timer = self._timer
        if timer is None or timer.cancelled:
            return None
        return timer.interval

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _setup_auto_refresh(self):
        self._cancel_timer()
        interval = self.settings.refresh_interval_seconds
        if interval is None:
            debug_log("SCAN: Auto refresh disabled (manual)")
            return
        self._timer = RefreshTimer(interval, self.scan, name="PortScanTimer")
        self._timer.start()
        debug_log(f"SCAN: Auto refresh every {interval}s")

    def _on_settings_changed(self, key, value):
        if key == "refresh_interval" and self._auto_refresh:
            self._setup_auto_refresh()
