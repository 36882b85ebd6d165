"""Fixed names, images and defaults shared across services."""

DEFAULT_INSTALL_DIR = "/opt/n8n"
INSTALL_DIR_CANDIDATES = ("/opt/n8n", "/root/n8n")
DESCRIPTOR_FILE = "docker-compose.yml"
CREDENTIALS_FILE = "credentials.txt"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

DIR_MODE = 0o755
FILE_MODE = 0o644
CREDENTIALS_MODE = 0o600

POSTGRES_IMAGE = "postgres:13"
N8N_IMAGE = "n8nio/n8n:latest"
DEFAULT_IMAGES = (POSTGRES_IMAGE, N8N_IMAGE)

DATABASE_SERVICE = "postgres"
APPLICATION_SERVICE = "n8n"
DATABASE_CONTAINER = "n8n-postgres"
APPLICATION_CONTAINER = "n8n"
DATABASE_NAME = "n8n"
DATABASE_USER = "n8n"
DATABASE_PORT = 5432
ADMIN_USERNAME = "admin"

APPLICATION_PORT = 5678
LOOPBACK_ADDRESS = "127.0.0.1"
WILDCARD_ADDRESS = "0.0.0.0"
DEFAULT_TIMEZONE = "UTC"

DEFAULT_PULL_TIMEOUT = 600.0
DEFAULT_SETTLE_DELAY = 10.0
DEFAULT_PROBE_TIMEOUT = 5.0

DAEMON_CONFIG_PATH = "/etc/docker/daemon.json"
DEFAULT_DNS_SERVERS = ("1.1.1.1", "8.8.8.8")
DOCKER_SOCKETS = ("/var/run/docker.sock", "/run/docker.sock")
DOCKER_RESTART_DELAY = 10.0
REGISTRY_CHECK_IMAGE = "hello-world"

CONFIG_ENV_VARS = {
    "db_password": "DB_PASSWORD",
    "admin_password": "ADMIN_PASSWORD",
    "domain": "DOMAIN_NAME",
    "timezone": "TIMEZONE",
    "install_dir": "N8N_DIR",
}
