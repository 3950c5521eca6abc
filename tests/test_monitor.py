import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

from openports.monitor import Monitor
from openports.settings import Settings

from fakes import DOCKER_PS_OUTPUT, LSOF_OUTPUT, PS_OUTPUT, FakeRunner, fail, ok

LSOF_AFTER_KILL = "\n".join(l for l in LSOF_OUTPUT.splitlines() if not l.startswith("node"))


def full_runner():
    return FakeRunner({
        "lsof": ok(LSOF_OUTPUT),
        "ps -p": ok(PS_OUTPUT),
        "docker info": ok("Server Version: 27.0"),
        "docker ps": ok(DOCKER_PS_OUTPUT),
        "docker stop": ok("web"),
        "docker kill": ok("web"),
        "docker restart": ok("web"),
        "kill -TERM": ok(),
        "kill -KILL": ok(),
    })


class MonitorTestCase(unittest.TestCase):
    def setUp(self):
        self.config_dir = tempfile.mkdtemp()
        self.settings = Settings(config_dir=self.config_dir)
        self.runner = full_runner()
        self.monitor = Monitor(self.settings, self.runner, settle_delay=0)

    def tearDown(self):
        self.monitor.stop()
        shutil.rmtree(self.config_dir, ignore_errors=True)


class TestRefreshAndView(MonitorTestCase):
    def test_refresh_scans_ports_and_containers(self):
        self.monitor.refresh()
        self.assertEqual(len(self.runner.commands("lsof")), 1)
        self.assertEqual(len(self.runner.commands("docker ps")), 1)

        visible, hidden = self.monitor.view()
        # 8080 belongs to the web container
        self.assertEqual([p.port for p in visible], [3000, 8000])
        self.assertEqual(hidden, [])
        self.assertEqual([c.name for c in self.monitor.containers()], ["web"])
        self.assertEqual(self.monitor.errors, [])

    def test_refresh_skips_docker_when_disabled(self):
        self.settings.set("show_docker_containers", False)
        self.monitor.refresh()
        self.assertEqual(self.runner.commands("docker"), [])
        visible, _ = self.monitor.view()
        self.assertIn(8080, [p.port for p in visible])

    def test_errors_collected(self):
        self.runner.on("lsof", fail("lsof: not found", 127))
        self.monitor.refresh()
        self.assertEqual(self.monitor.errors, ["lsof: not found"])

    def test_command_line_cache_feeds_filter(self):
        self.monitor.refresh()
        self.runner.on("ps -p 4242 -o args=", ok("/usr/bin/python3 -m http.server 8000"))
        record = self.monitor.find_port(8000)

        self.assertEqual(self.monitor.fetch_command_line(record), "/usr/bin/python3 -m http.server 8000")

        visible, _ = self.monitor.view("http.server")
        self.assertEqual([p.port for p in visible], [8000])

    def test_find_container(self):
        self.monitor.refresh()
        self.assertEqual(self.monitor.find_container("web").id, "abc123def456")
        self.assertEqual(self.monitor.find_container("abc123").name, "web")
        self.assertIsNone(self.monitor.find_container(""))
        self.assertIsNone(self.monitor.find_container("nope"))


class TestHide(MonitorTestCase):
    def test_hide_and_unhide_persist(self):
        self.monitor.refresh()
        record = self.monitor.find_port(3000)

        self.monitor.hide_port(record)
        visible, hidden = self.monitor.view()
        self.assertEqual([p.port for p in hidden], [3000])
        self.assertNotIn(3000, [p.port for p in visible])

        self.monitor.unhide_port(record)
        visible, hidden = self.monitor.view()
        self.assertIn(3000, [p.port for p in visible])
        self.assertEqual(hidden, [])


class TestProcessActions(MonitorTestCase):
    def test_kill_needs_confirmation(self):
        self.monitor.refresh()
        record = self.monitor.find_port(3000)

        self.assertIsNone(self.monitor.kill_port(record))
        self.assertIsNone(self.monitor.kill_port(record, confirm=lambda title, msg: False))
        self.assertEqual(self.runner.commands("kill"), [])

    def test_confirmed_kill_rescans(self):
        self.monitor.refresh()
        record = self.monitor.find_port(3000)
        self.runner.on("lsof", ok(LSOF_AFTER_KILL))
        confirm = MagicMock(return_value=True)

        result = self.monitor.kill_port(record, confirm)

        self.assertTrue(result.succeeded)
        title, message = confirm.call_args[0]
        self.assertEqual(title, "Kill Process?")
        self.assertIn("PID 12345", message)
        self.assertEqual(self.runner.commands("kill"), ["kill -KILL 12345"])
        self.assertEqual(len(self.runner.commands("lsof")), 2)
        self.assertIsNone(self.monitor.find_port(3000))

    def test_no_confirmation_when_disabled(self):
        self.settings.set("confirm_before_kill", False)
        self.monitor.refresh()
        result = self.monitor.terminate_port(self.monitor.find_port(3000))
        self.assertTrue(result.succeeded)
        self.assertEqual(self.runner.commands("kill"), ["kill -TERM 12345"])

    def test_failed_signal_does_not_rescan(self):
        self.settings.set("confirm_before_kill", False)
        self.monitor.refresh()
        self.runner.on("kill -TERM", fail("kill: (12345) - No such process"))

        result = self.monitor.terminate_port(self.monitor.find_port(3000))

        self.assertEqual(result.error_message, "Process 12345 no longer exists")
        self.assertEqual(len(self.runner.commands("lsof")), 1)


class TestContainerActions(MonitorTestCase):
    def test_stop_needs_confirmation(self):
        self.monitor.refresh()
        container = self.monitor.find_container("web")
        self.assertIsNone(self.monitor.stop_container(container))
        self.assertIsNone(self.monitor.kill_container(container, confirm=lambda t, m: False))
        self.assertEqual(self.runner.commands("docker stop"), [])
        self.assertEqual(self.runner.commands("docker kill"), [])

    def test_confirmed_stop_refreshes(self):
        self.monitor.refresh()
        container = self.monitor.find_container("web")
        self.runner.on("docker ps", ok(""))

        self.assertTrue(self.monitor.stop_container(container, confirm=lambda t, m: True))

        self.assertEqual(self.monitor.docker.containers, [])
        visible, _ = self.monitor.view()
        self.assertIn(8080, [p.port for p in visible])

    def test_restart_is_never_confirmed(self):
        self.monitor.refresh()
        container = self.monitor.find_container("web")
        self.assertTrue(self.monitor.restart_container(container))
        self.assertEqual(self.runner.commands("docker restart"), ["docker restart abc123def456"])


if __name__ == "__main__":
    unittest.main()
