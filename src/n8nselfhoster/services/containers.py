"""Restart containers left stopped after Docker maintenance."""

import time
from typing import Callable, Iterable, List

from n8nselfhoster.errors import SelfHosterError
from n8nselfhoster.models import RestartReport


class ContainerRestartService:
    """Starts exited containers one by one and reports the outcome."""

    def __init__(
        self,
        logger,
        console,
        command_runner,
        pause: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.pause = pause
        self.sleep = sleep

    def stopped_containers(self) -> List[str]:
        result = self.command_runner.run(
            ["docker", "ps", "-a", "--filter", "status=exited", "--format", "{{.Names}}"],
            capture_output=True,
        )
        return [name.strip() for name in (result.stdout or "").splitlines() if name.strip()]

    def restart_stopped(self, exclude: Iterable[str] = ()) -> RestartReport:
        excluded = set(exclude)
        report = RestartReport()

        containers = self.stopped_containers()
        if not containers:
            self.console.print("[green]All containers are already running.[/green]")
            return report

        for name in containers:
            if name in excluded:
                self.logger.info("Skipping excluded container %s", name)
                report.skipped.append(name)
                continue

            self.console.print(f"[blue]Starting {name}...[/blue]")
            try:
                self.command_runner.run(["docker", "start", name], capture_output=True)
            except SelfHosterError as exc:
                self.logger.warning("Failed to start %s: %s", name, exc)
                report.failed[name] = self._log_tail(name) or str(exc)
            else:
                report.started.append(name)
            self.sleep(self.pause)

        self.console.print(
            f"Started {len(report.started)}, failed {len(report.failed)}, "
            f"skipped {len(report.skipped)}."
        )
        return report

    def _log_tail(self, name: str, tail: int = 5) -> str:
        result = self.command_runner.run(
            ["docker", "logs", f"--tail={tail}", name],
            check=False,
            capture_output=True,
        )
        return "\n".join(part.strip() for part in (result.stdout, result.stderr) if part)
