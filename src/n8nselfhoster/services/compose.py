"""Compose descriptor and credentials generation."""

import os
from datetime import datetime
from typing import Any, Callable, Dict, Tuple

from n8nselfhoster.constants import (
    ADMIN_USERNAME,
    APPLICATION_CONTAINER,
    APPLICATION_PORT,
    APPLICATION_SERVICE,
    CREDENTIALS_FILE,
    CREDENTIALS_MODE,
    DATABASE_CONTAINER,
    DATABASE_NAME,
    DATABASE_PORT,
    DATABASE_SERVICE,
    DATABASE_USER,
    DESCRIPTOR_FILE,
    FILE_MODE,
    LOOPBACK_ADDRESS,
    N8N_IMAGE,
    POSTGRES_IMAGE,
    WILDCARD_ADDRESS,
)
from n8nselfhoster.models import (
    ComposeDescriptor,
    CredentialsRecord,
    DeploymentConfig,
    ExposureMode,
    PortBinding,
)


class ComposeGeneratorService:
    """Renders the postgres + n8n descriptor and the credentials record."""

    def __init__(
        self,
        logger,
        console,
        filesystem_service,
        clock: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service
        self.clock = clock

    def build_descriptor(self, config: DeploymentConfig) -> ComposeDescriptor:
        config = config.validated()
        access_url = config.access_url
        self.logger.debug("Using domain: %s", config.domain)
        self.logger.debug("Using timezone: %s", config.timezone)
        self.logger.info("Access URL: %s", access_url)

        document: Dict[str, Any] = {
            "services": {
                DATABASE_SERVICE: {
                    "image": POSTGRES_IMAGE,
                    "container_name": DATABASE_CONTAINER,
                    "restart": "unless-stopped",
                    "environment": {
                        "POSTGRES_DB": DATABASE_NAME,
                        "POSTGRES_USER": DATABASE_USER,
                        "POSTGRES_PASSWORD": config.db_password,
                    },
                    "volumes": ["postgres_data:/var/lib/postgresql/data"],
                    "healthcheck": {
                        "test": [
                            "CMD-SHELL",
                            f"pg_isready -h localhost -U {DATABASE_USER} -d {DATABASE_NAME}",
                        ],
                        "interval": "5s",
                        "timeout": "5s",
                        "retries": 10,
                    },
                },
                APPLICATION_SERVICE: {
                    "image": N8N_IMAGE,
                    "container_name": APPLICATION_CONTAINER,
                    "restart": "always",
                    "ports": [
                        str(PortBinding(LOOPBACK_ADDRESS, APPLICATION_PORT, APPLICATION_PORT))
                    ],
                    "environment": {
                        "DB_TYPE": "postgresdb",
                        "DB_POSTGRESDB_HOST": DATABASE_SERVICE,
                        "DB_POSTGRESDB_PORT": str(DATABASE_PORT),
                        "DB_POSTGRESDB_DATABASE": DATABASE_NAME,
                        "DB_POSTGRESDB_USER": DATABASE_USER,
                        "DB_POSTGRESDB_PASSWORD": config.db_password,
                        "N8N_BASIC_AUTH_ACTIVE": "true",
                        "N8N_BASIC_AUTH_USER": ADMIN_USERNAME,
                        "N8N_BASIC_AUTH_PASSWORD": config.admin_password,
                        "N8N_HOST": WILDCARD_ADDRESS,
                        "N8N_PORT": str(APPLICATION_PORT),
                        "N8N_PROTOCOL": ExposureMode.PRIVATE.scheme,
                        "WEBHOOK_URL": access_url,
                        "NODE_ENV": "production",
                        "GENERIC_TIMEZONE": config.timezone,
                        "N8N_LOG_LEVEL": "info",
                        "N8N_ENFORCE_SETTINGS_FILE_PERMISSIONS": "true",
                        "N8N_RUNNERS_ENABLED": "true",
                    },
                    "volumes": ["n8n_data:/home/node/.n8n"],
                    "depends_on": {
                        DATABASE_SERVICE: {"condition": "service_healthy"},
                    },
                },
            },
            "volumes": {
                "postgres_data": None,
                "n8n_data": None,
            },
        }
        return ComposeDescriptor(document)

    def build_credentials(self, config: DeploymentConfig) -> CredentialsRecord:
        config = config.validated()
        return CredentialsRecord(
            created_at=self.clock(),
            server_address=str(config.domain),
            db_password=str(config.db_password),
            admin_password=str(config.admin_password),
            access_url=config.access_url,
        )

    def generate(self, config: DeploymentConfig) -> Tuple[ComposeDescriptor, CredentialsRecord]:
        """Validates, renders and persists both artifacts in one atomic write."""
        config = config.validated()
        descriptor = self.build_descriptor(config)
        credentials = self.build_credentials(config)
        install_dir = str(config.install_dir)

        self.console.print("[blue]Creating N8N configuration...[/blue]")
        self.filesystem_service.ensure_dir(install_dir)
        self.filesystem_service.write_files_atomically(
            [
                (os.path.join(install_dir, DESCRIPTOR_FILE), descriptor.to_yaml(), FILE_MODE),
                (
                    os.path.join(install_dir, CREDENTIALS_FILE),
                    credentials.render(direct_port=APPLICATION_PORT),
                    CREDENTIALS_MODE,
                ),
            ]
        )

        self.console.print("[green]N8N configuration created.[/green]")
        self.logger.info("Credentials saved to %s", os.path.join(install_dir, CREDENTIALS_FILE))
        return descriptor, credentials
