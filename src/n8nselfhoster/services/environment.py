"""Docker host preparation: daemon configuration and health checks."""

import json
import os
import time
from typing import Any, Callable, Dict, Sequence

from n8nselfhoster.constants import (
    DAEMON_CONFIG_PATH,
    DEFAULT_DNS_SERVERS,
    DOCKER_RESTART_DELAY,
    DOCKER_SOCKETS,
    FILE_MODE,
    REGISTRY_CHECK_IMAGE,
)
from n8nselfhoster.errors import EnvironmentNotReady, SelfHosterError
from n8nselfhoster.errors_catalog import actionable_error, diagnostics_for


class EnvironmentService:
    """Writes daemon.json and checks that Docker and the tailnet are usable."""

    def __init__(
        self,
        logger,
        console,
        command_runner,
        filesystem_service,
        restart_delay: float = DOCKER_RESTART_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        sockets: Sequence[str] = DOCKER_SOCKETS,
    ):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.filesystem_service = filesystem_service
        self.restart_delay = restart_delay
        self.sleep = sleep
        self.sockets = tuple(sockets)

    @staticmethod
    def build_daemon_config(dns_servers: Sequence[str] = DEFAULT_DNS_SERVERS) -> Dict[str, Any]:
        return {
            "dns": list(dns_servers),
            "log-driver": "json-file",
            "log-opts": {
                "max-size": "10m",
                "max-file": "3",
            },
            "storage-driver": "overlay2",
        }

    def write_daemon_config(
        self,
        path: str = DAEMON_CONFIG_PATH,
        dns_servers: Sequence[str] = DEFAULT_DNS_SERVERS,
    ) -> Dict[str, Any]:
        self.console.print(f"[blue]Configuring Docker DNS ({', '.join(dns_servers)})...[/blue]")
        config = self.build_daemon_config(dns_servers)
        self.filesystem_service.write_file(path, json.dumps(config, indent=2) + "\n", FILE_MODE)
        self.logger.info("Docker daemon configuration written to %s", path)
        return config

    def restart_docker(self):
        self.console.print("[blue]Restarting Docker service...[/blue]")
        self.command_runner.run(["systemctl", "enable", "docker"], check=False, capture_output=True)
        try:
            self.command_runner.run(["systemctl", "restart", "docker"], capture_output=True)
        except SelfHosterError as exc:
            raise EnvironmentNotReady(
                f"{actionable_error('docker_not_ready')}\n{exc}",
                diagnostics=diagnostics_for("docker_not_ready"),
            ) from exc

        self.console.print(f"[yellow]Waiting {self.restart_delay:.0f}s for Docker to start...[/yellow]")
        self.sleep(self.restart_delay)

        result = self.command_runner.run(
            ["systemctl", "is-active", "--quiet", "docker"],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            raise EnvironmentNotReady(
                actionable_error("docker_not_ready"),
                diagnostics=diagnostics_for("docker_not_ready"),
            )
        self.console.print("[green]Docker is running.[/green]")

    def verify_docker(self):
        self.console.print("[blue]Verifying Docker installation...[/blue]")
        existing = [socket_path for socket_path in self.sockets if os.path.exists(socket_path)]
        if not existing:
            raise EnvironmentNotReady(
                actionable_error("docker_socket_missing", paths=", ".join(self.sockets)),
                diagnostics=diagnostics_for("docker_socket_missing"),
            )
        if self.sockets[0] not in existing:
            self._link_socket(existing[0], self.sockets[0])

        try:
            self.command_runner.run(["docker", "version"], capture_output=True)
        except SelfHosterError as exc:
            raise EnvironmentNotReady(
                f"{actionable_error('docker_not_ready')}\n{exc}",
                diagnostics=diagnostics_for("docker_not_ready"),
            ) from exc
        self.console.print("[green]Docker is working properly.[/green]")

    def _link_socket(self, target: str, link: str):
        try:
            os.symlink(target, link)
        except OSError as exc:
            self.logger.warning(
                "Docker socket %s is missing and could not be linked to %s: %s", link, target, exc
            )
        else:
            self.logger.info("Linked Docker socket %s to %s", link, target)

    def check_registry(self, daemon_config_path: str = DAEMON_CONFIG_PATH):
        self.console.print("[blue]Testing Docker image pulling...[/blue]")
        try:
            self.command_runner.run(["docker", "pull", REGISTRY_CHECK_IMAGE], capture_output=True)
        except SelfHosterError as exc:
            raise EnvironmentNotReady(
                f"{actionable_error('registry_unreachable', path=daemon_config_path)}\n{exc}",
                diagnostics=diagnostics_for("registry_unreachable", path=daemon_config_path),
            ) from exc
        self.console.print("[green]Docker can pull images successfully.[/green]")

    def tailnet_address(self) -> str:
        try:
            result = self.command_runner.run(["tailscale", "ip", "-4"], capture_output=True)
        except SelfHosterError as exc:
            raise EnvironmentNotReady(
                f"{actionable_error('tailnet_unavailable')}\n{exc}",
                diagnostics=diagnostics_for("tailnet_unavailable"),
            ) from exc

        lines = [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]
        if not lines:
            raise EnvironmentNotReady(
                actionable_error("tailnet_unavailable"),
                diagnostics=diagnostics_for("tailnet_unavailable"),
            )

        self.logger.info("Tailscale IP found: %s", lines[0])
        return lines[0]
