import logging
import os
import subprocess
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

import requests
from rich.console import Console
from rich.markup import escape

from .constants import (
    ADMIN_USERNAME,
    APPLICATION_CONTAINER,
    APPLICATION_SERVICE,
    CREDENTIALS_FILE,
    DAEMON_CONFIG_PATH,
    DEFAULT_DNS_SERVERS,
    DEFAULT_IMAGES,
    DEFAULT_INSTALL_DIR,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PULL_TIMEOUT,
    DEFAULT_SETTLE_DELAY,
    DESCRIPTOR_FILE,
    INSTALL_DIR_CANDIDATES,
)
from .errors import SelfHosterError
from .models import (
    ApplyResult,
    ComposeDescriptor,
    CredentialsRecord,
    DeploymentConfig,
    ExposureMode,
    PrefetchReport,
    ReconfigureResult,
    RestartReport,
)
from .services.command_runner import CommandRunner
from .services.compose import ComposeGeneratorService
from .services.containers import ContainerRestartService
from .services.docker_runtime import DockerRuntimeService
from .services.environment import EnvironmentService
from .services.filesystem import FileSystemService
from .services.prefetch import ImagePrefetchService
from .services.probe import ProbeService
from .services.reconfigure import ReconfigurationService

console = Console()
logger = logging.getLogger("n8nselfhoster")


def resolve_install_dir(install_dir: Optional[str] = None) -> str:
    """Explicit directory first, then the first known location holding a descriptor."""
    if install_dir:
        return install_dir
    for candidate in INSTALL_DIR_CANDIDATES:
        if os.path.isfile(os.path.join(candidate, DESCRIPTOR_FILE)):
            return candidate
    return DEFAULT_INSTALL_DIR


class N8NSelfHoster:
    def __init__(
        self,
        install_dir: Optional[str] = None,
        db_password: Optional[str] = None,
        admin_password: Optional[str] = None,
        domain: Optional[str] = None,
        timezone: Optional[str] = None,
        pull_timeout: float = DEFAULT_PULL_TIMEOUT,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        daemon_config: str = DAEMON_CONFIG_PATH,
        dns_servers: Sequence[str] = DEFAULT_DNS_SERVERS,
        compose_cmd: Optional[Sequence[str]] = None,
    ):
        self.install_dir = resolve_install_dir(install_dir)
        self.config = DeploymentConfig(
            db_password=db_password,
            admin_password=admin_password,
            domain=domain,
            install_dir=self.install_dir,
            timezone=timezone,
        )
        self.pull_timeout = pull_timeout
        self.daemon_config = daemon_config
        self.dns_servers = tuple(dns_servers)
        self.current_step_name: Optional[str] = None

        self.command_runner = CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.probe_service = ProbeService(
            logger=logger,
            requests_module=requests,
            timeout=probe_timeout,
        )
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            probe_service=self.probe_service,
            subprocess_module=subprocess,
            compose_cmd=list(compose_cmd) if compose_cmd else None,
            settle_delay=settle_delay,
        )
        self.environment_service = EnvironmentService(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            filesystem_service=self.filesystem_service,
        )
        self.prefetch_service = ImagePrefetchService(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
        )
        self.compose_service = ComposeGeneratorService(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
        )
        self.reconfiguration_service = ReconfigurationService(
            logger=logger,
            console=console,
            filesystem_service=self.filesystem_service,
            docker_runtime_service=self.docker_runtime_service,
            probe_service=self.probe_service,
            settle_delay=settle_delay,
        )
        self.container_restart_service = ContainerRestartService(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
        )

    def _run_step(self, name: str, callback: Callable[..., Any], *args, **kwargs):
        self.current_step_name = name
        logger.debug("Starting step: %s", name)
        try:
            result = callback(*args, **kwargs)
        except SelfHosterError as exc:
            if exc.step is None:
                exc.step = name
            raise
        logger.debug("Finished step: %s", name)
        self.current_step_name = None
        return result

    def prepare_environment(self, restart_docker: bool = True, check_registry: bool = True):
        self._run_step(
            "write_daemon_config",
            self.environment_service.write_daemon_config,
            self.daemon_config,
            self.dns_servers,
        )
        if restart_docker:
            self._run_step("restart_docker", self.environment_service.restart_docker)
        self._run_step("verify_docker", self.environment_service.verify_docker)
        if check_registry:
            self._run_step(
                "check_registry",
                self.environment_service.check_registry,
                self.daemon_config,
            )

    def prefetch_images(self, images: Iterable[str] = DEFAULT_IMAGES) -> PrefetchReport:
        report = self._run_step(
            "prefetch_images",
            self.prefetch_service.prefetch,
            list(images),
            self.pull_timeout,
        )
        if not report.succeeded:
            console.print(
                f"[yellow]Warning:[/yellow] Could not prefetch {', '.join(report.failed)}. "
                "Docker Compose will pull them on first start."
            )
        return report

    def generate(self) -> Tuple[ComposeDescriptor, CredentialsRecord]:
        return self._run_step("generate_descriptor", self.compose_service.generate, self.config)

    def load_descriptor(self) -> ComposeDescriptor:
        _, descriptor = self._run_step(
            "load_descriptor",
            self.reconfiguration_service.load,
            self.install_dir,
        )
        return descriptor

    def apply(self, descriptor: Optional[ComposeDescriptor] = None) -> ApplyResult:
        if descriptor is None:
            descriptor = self.load_descriptor()
        return self._run_step(
            "apply",
            self.docker_runtime_service.apply,
            descriptor,
            self.install_dir,
        )

    def teardown(self):
        self._run_step("teardown", self.docker_runtime_service.teardown, self.install_dir)

    def install(
        self,
        prepare_docker: bool = True,
        prefetch: bool = True,
    ) -> ApplyResult:
        """Runs the forward pipeline: environment, images, descriptor, deployment."""
        self._run_step("validate_configuration", self.config.validated)
        console.print("[bold blue]Starting N8N installation...[/bold blue]")

        if prepare_docker:
            self.prepare_environment()
        if prefetch:
            self.prefetch_images()

        descriptor, credentials = self.generate()
        result = self.apply(descriptor)

        console.print("[bold green]N8N installation complete.[/bold green]")
        console.print(f"  Access URL: {credentials.access_url}")
        console.print(f"  Username:   {ADMIN_USERNAME}")
        console.print(f"  Credentials file: {os.path.join(self.install_dir, CREDENTIALS_FILE)}")
        if not result.ready:
            console.print(
                "[yellow]N8N did not answer yet. It may still be starting; check "
                f"`docker logs {APPLICATION_CONTAINER} --tail=10`.[/yellow]"
            )
        return result

    def expose(self, address: Optional[str] = None) -> ReconfigureResult:
        if not address:
            address = self._run_step("resolve_tailnet_address", self.environment_service.tailnet_address)

        result = self._run_step(
            "reconfigure",
            self.reconfiguration_service.reconfigure,
            self.install_dir,
            ExposureMode.EXPOSED,
            address,
        )

        console.print(f"[bold green]N8N is configured for access at {result.access_url}[/bold green]")
        username = result.descriptor.get_env(APPLICATION_SERVICE, "N8N_BASIC_AUTH_USER") or ADMIN_USERNAME
        console.print(f"  Username: {username}")
        if result.backup_path:
            console.print(f"  Configuration backup: {result.backup_path}")
        if result.address_probe is not None and not result.address_probe.reachable:
            console.print(
                f"[yellow]N8N is not responding on {address} yet. Recent logs:[/yellow]"
            )
            console.print(self.docker_runtime_service.logs(APPLICATION_CONTAINER), markup=False)
            console.print(f"If errors persist, try: cd {self.install_dir} && docker compose restart")
        return result

    def restart_containers(self, exclude: Iterable[str] = ()) -> RestartReport:
        report = self._run_step(
            "restart_containers",
            self.container_restart_service.restart_stopped,
            exclude,
        )
        for name, log_tail in report.failed.items():
            console.print(f"[yellow]{name} failed to start:[/yellow]")
            console.print(log_tail, markup=False)
        return report

    def execute(self, action: Callable[[], Any]) -> int:
        """Runs one operation and maps its outcome to a process exit code."""
        try:
            action()
            return 0
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except SelfHosterError as exc:
            step = exc.step or self.current_step_name or "run"
            console.print(f"[bold red]Error in step '{step}':[/bold red] {escape(str(exc))}")
            logger.error("%s failed: %s", step, exc)
            if exc.diagnostics:
                console.print("[bold]Diagnostic commands:[/bold]")
                for command in exc.diagnostics:
                    console.print(f"  {command}", markup=False)
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return 1
