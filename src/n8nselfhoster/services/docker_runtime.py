"""Docker runtime services for n8n self-hoster."""

import os
import subprocess
import time
from typing import Callable, List, Optional

from n8nselfhoster.constants import DEFAULT_SETTLE_DELAY, DESCRIPTOR_FILE, LOOPBACK_ADDRESS
from n8nselfhoster.errors import ApplyFailure, DescriptorNotFound, SelfHosterError
from n8nselfhoster.errors_catalog import actionable_error, diagnostics_for
from n8nselfhoster.models import ApplyResult, ComposeDescriptor


class DockerRuntimeService:
    """Manages docker-compose detection and the deployment lifecycle."""

    def __init__(
        self,
        logger,
        console,
        command_runner,
        probe_service,
        subprocess_module=subprocess,
        compose_cmd: Optional[List[str]] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.probe_service = probe_service
        self.subprocess = subprocess_module
        self._compose_cmd = compose_cmd
        self.settle_delay = settle_delay
        self.sleep = sleep

    @property
    def compose_cmd(self) -> List[str]:
        if self._compose_cmd is None:
            self._compose_cmd = self.get_docker_compose_cmd()
        return self._compose_cmd

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise SelfHosterError(
                    "Docker Compose is not available. Install Docker Compose v2 (`docker compose`) "
                    "or v1 (`docker-compose`) and try again."
                )

    @staticmethod
    def descriptor_path(install_dir: str) -> str:
        return os.path.join(install_dir, DESCRIPTOR_FILE)

    def _compose(self, install_dir: str, *args: str) -> List[str]:
        return self.compose_cmd + ["-f", self.descriptor_path(install_dir), *args]

    def compose_up(self, install_dir: str):
        if not os.path.exists(self.descriptor_path(install_dir)):
            raise DescriptorNotFound(
                actionable_error("descriptor_not_found", path=install_dir),
                diagnostics=diagnostics_for("descriptor_not_found", path=install_dir),
            )

        self.logger.info("Starting services in %s", install_dir)
        try:
            self.command_runner.run(
                self._compose(install_dir, "up", "-d"),
                capture_output=True,
                cwd=install_dir,
            )
        except SelfHosterError as exc:
            raise ApplyFailure(
                f"{actionable_error('apply_failed', path=install_dir)}\n{exc}",
                diagnostics=diagnostics_for("apply_failed", path=install_dir),
            ) from exc

    def apply(self, descriptor: ComposeDescriptor, install_dir: str) -> ApplyResult:
        """Brings the persisted descriptor up and probes the n8n port once."""
        port = descriptor.public_port().host_port

        self.console.print("[blue]Starting N8N services...[/blue]")
        self.compose_up(install_dir)

        self.console.print(f"[yellow]Waiting {self.settle_delay:.0f}s for services to start...[/yellow]")
        self.sleep(self.settle_delay)

        probe = self.probe_service.probe(f"http://{LOOPBACK_ADDRESS}:{port}/")
        if probe.reachable:
            self.console.print(f"[green]N8N is responding on port {port}.[/green]")
        else:
            message = f"N8N is not responding on port {port} yet: {probe.error}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
        return ApplyResult(probe=probe)

    def teardown(self, install_dir: str):
        """Stops the services; volumes and the descriptor are kept."""
        self.console.print("[dim]Stopping N8N containers...[/dim]")
        self.logger.info("Stopping services in %s", install_dir)
        try:
            self.command_runner.run(
                self._compose(install_dir, "down"),
                capture_output=True,
                cwd=install_dir,
            )
        except SelfHosterError as exc:
            raise ApplyFailure(
                f"{actionable_error('teardown_failed', path=install_dir)}\n{exc}",
                diagnostics=diagnostics_for("teardown_failed", path=install_dir),
            ) from exc

    def logs(self, container: str, tail: int = 10) -> str:
        result = self.command_runner.run(
            ["docker", "logs", container, f"--tail={tail}"],
            check=False,
            capture_output=True,
        )
        return "\n".join(part.strip() for part in (result.stdout, result.stderr) if part)
