"""In-place exposure changes for an existing deployment."""

import os
import time
from typing import Callable, Optional, Tuple
from urllib.parse import urlparse

from n8nselfhoster.constants import (
    APPLICATION_SERVICE,
    DEFAULT_SETTLE_DELAY,
    DESCRIPTOR_FILE,
    WILDCARD_ADDRESS,
)
from n8nselfhoster.errors import (
    ApplyFailure,
    DescriptorNotFound,
    MissingConfiguration,
    SelfHosterError,
    UnsupportedTransition,
)
from n8nselfhoster.errors_catalog import actionable_error, diagnostics_for
from n8nselfhoster.models import (
    ComposeDescriptor,
    ExposureMode,
    PortBinding,
    ReconfigureResult,
    format_access_url,
)


class ReconfigurationService:
    """Moves a deployment from Private to Exposed mode.

    Only four fields change: the bind host of the published n8n port,
    N8N_PROTOCOL, WEBHOOK_URL and N8N_HOST. The descriptor on disk is
    snapshotted before anything is stopped, and any failure between the
    teardown and the reapply restores that snapshot and brings the original
    deployment back up.
    """

    def __init__(
        self,
        logger,
        console,
        filesystem_service,
        docker_runtime_service,
        probe_service,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service
        self.docker_runtime_service = docker_runtime_service
        self.probe_service = probe_service
        self.settle_delay = settle_delay
        self.sleep = sleep

    def load(self, install_dir: str) -> Tuple[str, ComposeDescriptor]:
        path = os.path.join(install_dir, DESCRIPTOR_FILE)
        if not os.path.isfile(path):
            raise DescriptorNotFound(
                actionable_error("descriptor_not_found", path=install_dir),
                step="load_descriptor",
                diagnostics=diagnostics_for("descriptor_not_found", path=install_dir),
            )

        with open(path, "r", encoding="utf-8") as file_obj:
            return path, ComposeDescriptor.from_yaml(file_obj.read())

    def detect_state(self, descriptor: ComposeDescriptor) -> Tuple[ExposureMode, Optional[str]]:
        binding = descriptor.public_port()
        protocol = descriptor.get_env(APPLICATION_SERVICE, "N8N_PROTOCOL")
        if binding.host in ("", WILDCARD_ADDRESS) and protocol == ExposureMode.EXPOSED.scheme:
            webhook_url = descriptor.get_env(APPLICATION_SERVICE, "WEBHOOK_URL") or ""
            return ExposureMode.EXPOSED, urlparse(webhook_url).hostname
        return ExposureMode.PRIVATE, None

    def exposed_url(self, descriptor: ComposeDescriptor, address: str) -> str:
        port = descriptor.public_port().host_port
        return format_access_url(ExposureMode.EXPOSED.scheme, address, port)

    def is_exposed_for(self, descriptor: ComposeDescriptor, address: str) -> bool:
        env = descriptor.get_env
        return (
            descriptor.public_port().host == WILDCARD_ADDRESS
            and env(APPLICATION_SERVICE, "N8N_PROTOCOL") == ExposureMode.EXPOSED.scheme
            and env(APPLICATION_SERVICE, "WEBHOOK_URL") == self.exposed_url(descriptor, address)
            and env(APPLICATION_SERVICE, "N8N_HOST") == WILDCARD_ADDRESS
        )

    def expose(self, descriptor: ComposeDescriptor, address: str) -> ComposeDescriptor:
        """Returns a copy switched to Exposed mode; the input is untouched."""
        mutated = descriptor.copy()
        binding = mutated.public_port()
        mutated.set_public_port(
            PortBinding(WILDCARD_ADDRESS, binding.host_port, binding.container_port)
        )
        mutated.set_env(APPLICATION_SERVICE, "N8N_PROTOCOL", ExposureMode.EXPOSED.scheme)
        mutated.set_env(APPLICATION_SERVICE, "WEBHOOK_URL", self.exposed_url(mutated, address))
        mutated.set_env(APPLICATION_SERVICE, "N8N_HOST", WILDCARD_ADDRESS)
        return mutated

    def reconfigure(self, install_dir: str, mode: ExposureMode, new_address: str) -> ReconfigureResult:
        path, descriptor = self.load(install_dir)
        current_mode, current_address = self.detect_state(descriptor)
        self.logger.info(
            "Current exposure: %s%s",
            current_mode.value,
            f" ({current_address})" if current_address else "",
        )

        if mode is ExposureMode.PRIVATE:
            if current_mode is ExposureMode.PRIVATE:
                self.console.print("[green]Deployment is already private. Nothing to do.[/green]")
                return ReconfigureResult(
                    descriptor=descriptor,
                    mode=mode,
                    address=new_address,
                    access_url=descriptor.get_env(APPLICATION_SERVICE, "WEBHOOK_URL") or "",
                    changed=False,
                )
            raise UnsupportedTransition(
                "Switching an exposed deployment back to private mode is not supported. "
                "Restore a `docker-compose.yml.backup.*` file from the install directory instead.",
                step="reconfigure",
                diagnostics=[f"ls -la {install_dir}"],
            )

        if not (new_address or "").strip():
            raise MissingConfiguration(
                "new_address",
                "An address is required to expose the deployment. Suggested action: pass "
                "`--address` or check that `tailscale ip -4` returns one.",
            )

        if self.is_exposed_for(descriptor, new_address):
            self.console.print(
                f"[green]Deployment is already exposed on {new_address}. Nothing to do.[/green]"
            )
            return ReconfigureResult(
                descriptor=descriptor,
                mode=mode,
                address=new_address,
                access_url=self.exposed_url(descriptor, new_address),
                changed=False,
            )

        mutated = self.expose(descriptor, new_address)
        content = mutated.to_yaml()
        file_mode = os.stat(path).st_mode & 0o777

        self.console.print("[blue]Backing up current docker-compose.yml...[/blue]")
        backup_path = self.filesystem_service.create_backup(path)

        step = "teardown"
        try:
            self.docker_runtime_service.teardown(install_dir)
            step = "update_descriptor"
            self.filesystem_service.write_files_atomically([(path, content, file_mode)])
            self.console.print("[green]Configuration updated successfully.[/green]")
            step = "reapply"
            self.docker_runtime_service.compose_up(install_dir)
        except SelfHosterError as exc:
            self._recover(install_dir, path, backup_path, step, exc)

        self.console.print(f"[yellow]Waiting {self.settle_delay:.0f}s for services to start...[/yellow]")
        self.sleep(self.settle_delay)

        port = mutated.public_port().host_port
        loopback_probe = self.probe_service.probe(f"http://localhost:{port}/")
        address_probe = self.probe_service.probe(self.exposed_url(mutated, new_address))
        for label, probe in (("localhost", loopback_probe), (new_address, address_probe)):
            if probe.reachable:
                self.console.print(f"[green]N8N is responding on {label}.[/green]")
            else:
                self.logger.warning("N8N is not responding on %s yet: %s", label, probe.error)

        return ReconfigureResult(
            descriptor=mutated,
            mode=mode,
            address=new_address,
            access_url=self.exposed_url(mutated, new_address),
            changed=True,
            backup_path=backup_path,
            loopback_probe=loopback_probe,
            address_probe=address_probe,
        )

    def _recover(self, install_dir: str, path: str, backup_path: str, step: str, exc: SelfHosterError):
        self.logger.error("Reconfiguration failed during %s: %s", step, exc)
        self.console.print(f"[yellow]Restoring original configuration from {backup_path}...[/yellow]")
        diagnostics = exc.diagnostics or diagnostics_for("apply_failed", path=install_dir)

        try:
            self.filesystem_service.restore_backup(backup_path, path)
            self.docker_runtime_service.compose_up(install_dir)
        except SelfHosterError as recovery_exc:
            raise ApplyFailure(
                f"Reconfiguration failed during {step} and the original deployment could not be "
                f"restarted: {recovery_exc}. Suggested action: restore it manually with "
                f"`cp {backup_path} {path}` and run `docker compose up -d` in {install_dir}.",
                restored_from=backup_path,
                step=step,
                diagnostics=diagnostics,
            ) from exc

        raise ApplyFailure(
            f"Reconfiguration failed during {step}: {exc}. "
            f"The original configuration was restored from {backup_path}.",
            restored_from=backup_path,
            step=step,
            diagnostics=diagnostics,
        ) from exc
