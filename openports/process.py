"""
Signals and per-PID lookups.

kill(1) gives us nothing but exit status and an error string, so failures are
classified by matching known phrases in stderr. This is best effort: a
message we do not recognise is passed through as-is.
"""
from collections import namedtuple

from .log import debug_log
from .shell import run_command

SIGNAL_TIMEOUT = 10
LOOKUP_TIMEOUT = 5

# checked in order, first match wins
SIGNAL_ERRORS = (
    ("no such process", "Process {pid} no longer exists"),
    ("operation not permitted", "Permission denied. Cannot {action} process {pid}"),
    ("permission denied", "Permission denied. Cannot {action} process {pid}"),
)


class ProcessResult(namedtuple("ProcessResult", "succeeded error_message")):
    __slots__ = ()

    @classmethod
    def success(cls):
        return cls(True, None)

    @classmethod
    def failure(cls, message):
        return cls(False, message)


def _valid_pid(pid):
    if isinstance(pid, bool):
        return None
    try:
        pid = int(pid)
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def classify_signal_error(stderr, pid, action):
    lowered = (stderr or "").lower()
    for needle, template in SIGNAL_ERRORS:
        if needle in lowered:
            return template.format(pid=pid, action=action)
    return stderr or f"Failed to {action} process {pid}"


def send_signal(pid, signal, action, runner=run_command):
    valid = _valid_pid(pid)
    if valid is None:
        return ProcessResult.failure(f"Invalid process ID: {pid}")

    result = runner(f"kill -{signal} {valid}", SIGNAL_TIMEOUT)
    if result.succeeded:
        debug_log(f"KILL: Sent {signal} to {valid}")
        return ProcessResult.success()

    message = classify_signal_error(result.stderr, valid, action)
    debug_log(f"KILL: {signal} to {valid} failed - Code {result.exit_code}, Err: {result.stderr}")
    return ProcessResult.failure(message)


def terminate(pid, runner=run_command):
    """SIGTERM: let the process clean up."""
    return send_signal(pid, "TERM", "terminate", runner)


def kill(pid, runner=run_command):
    """SIGKILL: for processes that ignore SIGTERM."""
    return send_signal(pid, "KILL", "kill", runner)


def is_running(pid, runner=run_command):
    # kill -0 also fails for processes we may not signal, so those read as
    # not running.
    valid = _valid_pid(pid)
    if valid is None:
        return False
    return runner(f"kill -0 {valid} 2>/dev/null", LOOKUP_TIMEOUT).exit_code == 0


def _ps_field(pid, field, runner):
    valid = _valid_pid(pid)
    if valid is None:
        return None
    result = runner(f"ps -p {valid} -o {field}= 2>/dev/null", LOOKUP_TIMEOUT)
    if not result.succeeded or not result.stdout:
        return None
    return result.stdout


def get_name(pid, runner=run_command):
    return _ps_field(pid, "comm", runner)


def get_command_line(pid, runner=run_command):
    """Full command line (path and arguments), or None."""
    return _ps_field(pid, "args", runner)
