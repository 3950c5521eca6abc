"""
Single entry point for running external tools (lsof, ps, kill, docker).

Every collaborator in the package receives a ``runner`` callable with the
signature of :func:`run_command`, so tests can swap in a scripted fake.
"""
import os
import signal
import subprocess
from collections import namedtuple

import psutil

from .log import debug_log

DEFAULT_TIMEOUT = 10
# how long to keep reading pipes after a timed-out command was killed
DRAIN_TIMEOUT = 2
SHELL = "/bin/sh"

# lsof, ps and docker live in different places depending on the distro or on
# Homebrew; never rely on the PATH we were started with.
SEARCH_PATHS = (
    "/usr/local/bin",
    "/usr/bin",
    "/bin",
    "/usr/sbin",
    "/sbin",
    "/opt/homebrew/bin",
)


class CommandResult(namedtuple("CommandResult", "stdout stderr exit_code")):
    __slots__ = ()

    @property
    def succeeded(self):
        return self.exit_code == 0


def command_env():
    """Copy of the environment with PATH pinned to SEARCH_PATHS."""
    paths = list(SEARCH_PATHS)
    # If running via sudo, also check the original user's local bin.
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user:
        local_bin = os.path.expanduser(f"~{sudo_user}/.local/bin")
        if os.path.isdir(local_bin):
            paths.append(local_bin)
    env = os.environ.copy()
    env["PATH"] = os.pathsep.join(paths)
    env["LC_ALL"] = "C"
    return env


def _kill_tree(proc):
    """Kill the shell and everything it spawned."""
    try:
        parent = psutil.Process(proc.pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
    # backgrounded grandchildren are reparented away from the shell but stay
    # in its session's process group
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except OSError:
        pass
    try:
        proc.kill()
    except OSError:
        pass


def _as_text(data):
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data


def run_command(command, timeout=DEFAULT_TIMEOUT):
    """
    Run ``command`` through the shell and return a CommandResult.

    stdout and stderr are stripped. Never raises: a command that cannot be
    started resolves with exit code -1 and the error text in stderr, and a
    command that outlives ``timeout`` is killed (with its children) and
    resolves as a failure carrying whatever output it produced.
    """
    if not command or not command.strip():
        return CommandResult("", "Empty command", -1)

    try:
        proc = subprocess.Popen(
            [SHELL, "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            env=command_env(),
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        debug_log(f"SHELL: Could not start '{command}': {e}")
        return CommandResult("", str(e), -1)

    try:
        out, err = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_tree(proc)
        try:
            out, err = proc.communicate(timeout=DRAIN_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            # something outside the process group still holds the pipes
            out, err = _as_text(e.stdout), _as_text(e.stderr)
            for pipe in (proc.stdout, proc.stderr):
                pipe.close()
            proc.wait()
        debug_log(f"SHELL: Timed out after {timeout}s: {command}")
        err = (err or "").strip() or f"Command timed out after {timeout}s"
        code = proc.returncode if proc.returncode not in (None, 0) else -1
        return CommandResult((out or "").strip(), err, code)

    return CommandResult((out or "").strip(), (err or "").strip(), proc.returncode)
