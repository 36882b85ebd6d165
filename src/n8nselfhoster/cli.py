import logging
import os
import sys

import click
from rich.logging import RichHandler

from .constants import (
    DAEMON_CONFIG_PATH,
    DEFAULT_DNS_SERVERS,
    DEFAULT_IMAGES,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PULL_TIMEOUT,
    DEFAULT_SETTLE_DELAY,
)
from .core import N8NSelfHoster
from .errors import SelfHosterError
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_FILE = ".n8nselfhoster.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _build_hoster(ctx: click.Context, **cli_values) -> N8NSelfHoster:
    config_values = ctx.obj["config"]
    dns_servers = _resolve_option(
        cli_values.pop("dns_servers", None) or None,
        config_values,
        "dns_servers",
        default=DEFAULT_DNS_SERVERS,
    )

    try:
        return N8NSelfHoster(
            install_dir=_resolve_option(ctx.obj["install_dir"], config_values, "install_dir"),
            db_password=_resolve_option(cli_values.get("db_password"), config_values, "db_password"),
            admin_password=_resolve_option(
                cli_values.get("admin_password"), config_values, "admin_password"
            ),
            domain=_resolve_option(cli_values.get("domain"), config_values, "domain"),
            timezone=_resolve_option(cli_values.get("timezone"), config_values, "timezone"),
            pull_timeout=float(
                _resolve_option(
                    cli_values.get("pull_timeout"),
                    config_values,
                    "pull_timeout",
                    default=DEFAULT_PULL_TIMEOUT,
                )
            ),
            settle_delay=float(
                _resolve_option(None, config_values, "settle_delay", default=DEFAULT_SETTLE_DELAY)
            ),
            probe_timeout=float(
                _resolve_option(None, config_values, "probe_timeout", default=DEFAULT_PROBE_TIMEOUT)
            ),
            daemon_config=_resolve_option(
                cli_values.get("daemon_config"),
                config_values,
                "daemon_config",
                default=DAEMON_CONFIG_PATH,
            ),
            dns_servers=tuple(dns_servers),
        )
    except SelfHosterError as exc:
        raise click.ClickException(str(exc)) from exc


def _deployment_options(func):
    options = [
        click.option("--db-password", required=False, help="PostgreSQL password (env: DB_PASSWORD)."),
        click.option(
            "--admin-password",
            required=False,
            help="n8n basic-auth password for `admin` (env: ADMIN_PASSWORD).",
        ),
        click.option(
            "--domain",
            required=False,
            help="Domain name, IPv4 or IPv6 address of the server (env: DOMAIN_NAME).",
        ),
        click.option(
            "--timezone",
            required=False,
            help="IANA timezone for n8n, defaults to UTC (env: TIMEZONE).",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--install-dir",
    required=False,
    help="Directory holding docker-compose.yml and credentials.txt (env: N8N_DIR).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, install_dir, verbose, log_file):
    """Install and maintain a self-hosted n8n with PostgreSQL on Docker."""
    logger = logging.getLogger("n8nselfhoster")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load_layers(resolved_config)
    except SelfHosterError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {"config": config_values, "install_dir": install_dir}


@main.command()
@_deployment_options
@click.option("--skip-docker-setup", is_flag=True, help="Do not rewrite daemon.json or restart Docker.")
@click.option("--skip-prefetch", is_flag=True, help="Let Docker Compose pull images on first start.")
@click.pass_context
def install(ctx, db_password, admin_password, domain, timezone, skip_docker_setup, skip_prefetch):
    """Prepare Docker, pull images, generate the deployment and start it."""
    hoster = _build_hoster(
        ctx,
        db_password=db_password,
        admin_password=admin_password,
        domain=domain,
        timezone=timezone,
    )
    raise SystemExit(
        hoster.execute(
            lambda: hoster.install(
                prepare_docker=not skip_docker_setup,
                prefetch=not skip_prefetch,
            )
        )
    )


@main.command()
@_deployment_options
@click.pass_context
def generate(ctx, db_password, admin_password, domain, timezone):
    """Write docker-compose.yml and credentials.txt without starting anything."""
    hoster = _build_hoster(
        ctx,
        db_password=db_password,
        admin_password=admin_password,
        domain=domain,
        timezone=timezone,
    )
    raise SystemExit(hoster.execute(hoster.generate))


@main.command()
@click.option(
    "--image",
    "images",
    multiple=True,
    help="Image reference to pull. Repeatable; defaults to the PostgreSQL and n8n images.",
)
@click.option("--pull-timeout", type=float, default=None, help="Seconds allowed per image pull.")
@click.pass_context
def prefetch(ctx, images, pull_timeout):
    """Pull container images ahead of time. Failures are reported as warnings."""
    hoster = _build_hoster(ctx, pull_timeout=pull_timeout)
    raise SystemExit(hoster.execute(lambda: hoster.prefetch_images(images or DEFAULT_IMAGES)))


@main.command()
@click.pass_context
def up(ctx):
    """Start the deployment and probe the n8n port."""
    hoster = _build_hoster(ctx)
    raise SystemExit(hoster.execute(hoster.apply))


@main.command()
@click.pass_context
def down(ctx):
    """Stop the deployment, keeping volumes and configuration."""
    hoster = _build_hoster(ctx)
    raise SystemExit(hoster.execute(hoster.teardown))


@main.command()
@click.option(
    "--address",
    required=False,
    help="Address to publish n8n on. Defaults to the output of `tailscale ip -4`.",
)
@click.pass_context
def expose(ctx, address):
    """Switch an existing deployment from localhost/HTTPS to wildcard/HTTP binding."""
    hoster = _build_hoster(ctx)
    raise SystemExit(hoster.execute(lambda: hoster.expose(address)))


@main.command("configure-docker")
@click.option(
    "--dns",
    "dns_servers",
    multiple=True,
    help="DNS server for containers. Repeatable; defaults to 1.1.1.1 and 8.8.8.8.",
)
@click.option("--daemon-config", type=click.Path(), default=None, help="Path to daemon.json.")
@click.option("--no-restart", is_flag=True, help="Write daemon.json without restarting Docker.")
@click.option("--skip-registry-check", is_flag=True, help="Do not test pulling an image.")
@click.pass_context
def configure_docker(ctx, dns_servers, daemon_config, no_restart, skip_registry_check):
    """Write Docker daemon DNS/logging settings and verify Docker is healthy."""
    hoster = _build_hoster(ctx, dns_servers=dns_servers, daemon_config=daemon_config)
    raise SystemExit(
        hoster.execute(
            lambda: hoster.prepare_environment(
                restart_docker=not no_restart,
                check_registry=not skip_registry_check,
            )
        )
    )


@main.command("restart-containers")
@click.option("--exclude", multiple=True, help="Container name to leave stopped. Repeatable.")
@click.option("--yes", "assume_yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def restart_containers(ctx, exclude, assume_yes):
    """Start every exited container, reporting the ones that fail."""
    if not assume_yes and sys.stdin.isatty():
        click.confirm("Do you want to restart all stopped containers?", abort=True)

    hoster = _build_hoster(ctx)
    raise SystemExit(hoster.execute(lambda: hoster.restart_containers(exclude)))


if __name__ == "__main__":
    main()
