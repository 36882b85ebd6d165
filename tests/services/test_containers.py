import subprocess

from n8nselfhoster.errors import SelfHosterError
from n8nselfhoster.services.containers import ContainerRestartService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeDocker:
    def __init__(self, stopped, broken=()):
        self.stopped = stopped
        self.broken = set(broken)
        self.started = []

    def run(self, cmd, **_kwargs):
        if cmd[:3] == ["docker", "ps", "-a"]:
            return subprocess.CompletedProcess(cmd, 0, stdout="\n".join(self.stopped) + "\n", stderr="")
        if cmd[:2] == ["docker", "start"]:
            if cmd[2] in self.broken:
                raise SelfHosterError(f"Command failed (1): docker start {cmd[2]}")
            self.started.append(cmd[2])
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        if cmd[:2] == ["docker", "logs"]:
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="bind: address in use")
        raise AssertionError(f"unexpected command {cmd}")


def _service(docker):
    return ContainerRestartService(
        logger=DummyLogger(),
        console=DummyConsole(),
        command_runner=docker,
        sleep=lambda _seconds: None,
    )


def test_restart_stopped_starts_each_container_and_collects_failures():
    docker = FakeDocker(["portainer", "pihole", "caddy", "vaultwarden"], broken={"caddy"})

    report = _service(docker).restart_stopped(exclude=["pihole"])

    assert report.started == ["portainer", "vaultwarden"]
    assert report.skipped == ["pihole"]
    assert report.failed == {"caddy": "bind: address in use"}


def test_restart_stopped_with_nothing_to_do():
    report = _service(FakeDocker([])).restart_stopped()

    assert report.started == []
    assert report.failed == {}
