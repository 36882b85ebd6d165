import json
import os
import subprocess

import pytest

import n8nselfhoster.services.environment as environment_module
from n8nselfhoster.errors import EnvironmentNotReady, SelfHosterError
from n8nselfhoster.services.environment import EnvironmentService
from n8nselfhoster.services.filesystem import FileSystemService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class ScriptedRunner:
    def __init__(self, responses=None, failures=()):
        self.responses = responses or {}
        self.failures = set(failures)
        self.calls = []

    def run(self, cmd, check=True, **_kwargs):
        self.calls.append(cmd)
        key = " ".join(cmd)
        if key in self.failures:
            raise SelfHosterError(f"Command failed (1): {key}")
        returncode, stdout = self.responses.get(key, (0, ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")


def _service(runner, tmp_path, sockets=None):
    return EnvironmentService(
        logger=DummyLogger(),
        console=DummyConsole(),
        command_runner=runner,
        filesystem_service=FileSystemService(logger=DummyLogger(), console=DummyConsole()),
        restart_delay=0,
        sleep=lambda _seconds: None,
        sockets=sockets or (str(tmp_path / "docker.sock"),),
    )


def test_write_daemon_config_sets_dns_and_log_rotation(tmp_path):
    path = tmp_path / "docker" / "daemon.json"

    _service(ScriptedRunner(), tmp_path).write_daemon_config(str(path), ["8.8.8.8", "8.8.4.4"])

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {
        "dns": ["8.8.8.8", "8.8.4.4"],
        "log-driver": "json-file",
        "log-opts": {"max-size": "10m", "max-file": "3"},
        "storage-driver": "overlay2",
    }


def test_restart_docker_checks_service_is_active(tmp_path):
    runner = ScriptedRunner(responses={"systemctl is-active --quiet docker": (3, "")})

    with pytest.raises(EnvironmentNotReady) as exc_info:
        _service(runner, tmp_path).restart_docker()

    assert ["systemctl", "restart", "docker"] in runner.calls
    assert "systemctl status docker" in exc_info.value.diagnostics


def test_verify_docker_requires_socket(tmp_path):
    with pytest.raises(EnvironmentNotReady, match="No Docker socket found"):
        _service(ScriptedRunner(), tmp_path).verify_docker()


def test_verify_docker_links_alternate_socket(tmp_path):
    primary = tmp_path / "var-run-docker.sock"
    alternate = tmp_path / "run-docker.sock"
    alternate.write_text("", encoding="utf-8")
    runner = ScriptedRunner()

    _service(runner, tmp_path, sockets=(str(primary), str(alternate))).verify_docker()

    assert runner.calls == [["docker", "version"]]
    assert primary.is_symlink()
    assert os.readlink(primary) == str(alternate)


def test_verify_docker_warns_when_socket_cannot_be_linked(tmp_path, monkeypatch):
    alternate = tmp_path / "run-docker.sock"
    alternate.write_text("", encoding="utf-8")
    warnings = []

    class RecordingLogger(DummyLogger):
        def warning(self, message, *args, **_kwargs):
            warnings.append(message % args)

    def refuse_symlink(*_args):
        raise PermissionError("read-only file system")

    monkeypatch.setattr(environment_module.os, "symlink", refuse_symlink)
    service = _service(ScriptedRunner(), tmp_path, sockets=(str(tmp_path / "missing.sock"), str(alternate)))
    service.logger = RecordingLogger()

    service.verify_docker()

    assert len(warnings) == 1
    assert "could not be linked" in warnings[0]


def test_check_registry_failure_points_at_dns(tmp_path):
    runner = ScriptedRunner(failures={"docker pull hello-world"})

    with pytest.raises(EnvironmentNotReady) as exc_info:
        _service(runner, tmp_path).check_registry("/etc/docker/daemon.json")

    assert "nslookup registry-1.docker.io" in exc_info.value.diagnostics


def test_tailnet_address_uses_first_ipv4(tmp_path):
    runner = ScriptedRunner(responses={"tailscale ip -4": (0, "100.64.1.5\n")})

    assert _service(runner, tmp_path).tailnet_address() == "100.64.1.5"


def test_tailnet_address_requires_output(tmp_path):
    runner = ScriptedRunner(responses={"tailscale ip -4": (0, "\n")})

    with pytest.raises(EnvironmentNotReady, match="Tailscale"):
        _service(runner, tmp_path).tailnet_address()
