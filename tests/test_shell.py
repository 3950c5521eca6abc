import os
import subprocess
import time
import unittest
from unittest.mock import MagicMock, patch

from openports.shell import DRAIN_TIMEOUT, SEARCH_PATHS, CommandResult, command_env, run_command


class TestRunCommand(unittest.TestCase):
    def test_stdout_and_exit_code(self):
        result = run_command("echo '  hello  '")
        self.assertEqual(result, CommandResult("hello", "", 0))
        self.assertTrue(result.succeeded)

    def test_stderr_and_failure(self):
        result = run_command("echo oops >&2; exit 3")
        self.assertEqual(result.stderr, "oops")
        self.assertEqual(result.exit_code, 3)
        self.assertFalse(result.succeeded)

    def test_timeout_kills_command(self):
        start = time.monotonic()
        result = run_command("echo partial; sleep 30", timeout=0.5)
        self.assertLess(time.monotonic() - start, 10)
        self.assertFalse(result.succeeded)
        self.assertEqual(result.stdout, "partial")
        self.assertIn("timed out", result.stderr)

    def test_timeout_kills_backgrounded_grandchild(self):
        start = time.monotonic()
        result = run_command("(sleep 8 &); echo partial; sleep 30", timeout=0.5)
        self.assertLess(time.monotonic() - start, 5)
        self.assertFalse(result.succeeded)
        self.assertEqual(result.stdout, "partial")

    def test_drain_after_timeout_is_bounded(self):
        proc = MagicMock(returncode=-9)
        proc.communicate.side_effect = [
            subprocess.TimeoutExpired("sh", 1),
            subprocess.TimeoutExpired("sh", 2, output=b"partial\n", stderr=b""),
        ]
        with patch("openports.shell.subprocess.Popen", return_value=proc), \
                patch("openports.shell._kill_tree") as kill_tree:
            result = run_command("daemonize-something", timeout=1)

        kill_tree.assert_called_once_with(proc)
        self.assertEqual(proc.communicate.call_args_list[1][1], {"timeout": DRAIN_TIMEOUT})
        proc.stdout.close.assert_called_once_with()
        proc.stderr.close.assert_called_once_with()
        self.assertEqual(result, CommandResult("partial", "Command timed out after 1s", -9))

    def test_empty_command_rejected(self):
        self.assertEqual(run_command("   "), CommandResult("", "Empty command", -1))

    def test_start_failure_is_a_result(self):
        with patch("openports.shell.subprocess.Popen", side_effect=OSError("no shell")):
            result = run_command("echo hi")
        self.assertEqual(result, CommandResult("", "no shell", -1))

    def test_path_is_pinned(self):
        with patch.dict(os.environ, {"PATH": "/nowhere"}):
            env = command_env()
        for path in SEARCH_PATHS:
            self.assertIn(path, env["PATH"].split(os.pathsep))
        self.assertNotIn("/nowhere", env["PATH"])

    def test_command_sees_pinned_path(self):
        with patch.dict(os.environ, {"PATH": "/nowhere"}):
            result = run_command("echo $PATH")
        self.assertTrue(result.stdout.startswith("/usr/local/bin"))


if __name__ == "__main__":
    unittest.main()
