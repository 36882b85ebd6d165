"""Best-effort image prefetching."""

from typing import Iterable

from n8nselfhoster.constants import DEFAULT_PULL_TIMEOUT
from n8nselfhoster.errors import CommandTimeout, SelfHosterError
from n8nselfhoster.models import PrefetchReport, PullOutcome


class ImagePrefetchService:
    """Pulls images one by one; failures are reported, never raised."""

    def __init__(self, logger, console, command_runner):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner

    def prefetch(
        self,
        image_refs: Iterable[str],
        per_image_timeout: float = DEFAULT_PULL_TIMEOUT,
    ) -> PrefetchReport:
        report = PrefetchReport()

        for image_ref in image_refs:
            self.console.print(f"[blue]Downloading {image_ref}...[/blue]")
            try:
                self.command_runner.run(
                    ["docker", "pull", image_ref],
                    capture_output=True,
                    timeout=per_image_timeout,
                )
            except CommandTimeout as exc:
                report.outcomes[image_ref] = PullOutcome.TIMED_OUT
                report.errors[image_ref] = str(exc)
            except SelfHosterError as exc:
                report.outcomes[image_ref] = PullOutcome.FAILED
                report.errors[image_ref] = str(exc)
            else:
                report.outcomes[image_ref] = PullOutcome.SUCCESS
                self.console.print(f"[green]{image_ref} downloaded.[/green]")
                continue

            self.logger.warning(
                "Pulling %s %s, will try during installation: %s",
                image_ref,
                "timed out" if report.outcomes[image_ref] is PullOutcome.TIMED_OUT else "failed",
                report.errors[image_ref],
            )

        return report
