"""Actionable error catalog for n8n self-hoster."""

from typing import Dict, List, Union

_ERROR_MESSAGES: Dict[str, Dict[str, Union[str, List[str]]]] = {
    "missing_configuration": {
        "what": "{field} is not set.",
        "next": "Pass it as an option, export {env_var}, or add `{key}` to the config file.",
        "diagnostics": [],
    },
    "persistence_failure": {
        "what": "Could not write deployment files to {path}.",
        "next": "Check that the directory is writable by the current user (try running with sudo).",
        "diagnostics": ["ls -ld {path}", "df -h {path}"],
    },
    "descriptor_not_found": {
        "what": "docker-compose.yml not found at {path}.",
        "next": "Run `n8n-selfhoster install` first or pass the correct `--install-dir`.",
        "diagnostics": ["ls -la {path}"],
    },
    "apply_failed": {
        "what": "Docker Compose could not bring the deployment up in {path}.",
        "next": "Inspect the container status and logs, then retry.",
        "diagnostics": [
            "cd {path} && docker compose ps",
            "docker logs n8n --tail=50",
            "docker logs n8n-postgres --tail=50",
        ],
    },
    "teardown_failed": {
        "what": "Docker Compose could not stop the deployment in {path}.",
        "next": "Check which containers are still running and stop them manually.",
        "diagnostics": ["cd {path} && docker compose ps", "docker ps -a"],
    },
    "docker_not_ready": {
        "what": "Docker is not responding.",
        "next": "Check the daemon status and restart it.",
        "diagnostics": ["systemctl status docker", "docker version", "docker info"],
    },
    "docker_socket_missing": {
        "what": "No Docker socket found at {paths}.",
        "next": "Start the Docker service and check that the daemon created its socket.",
        "diagnostics": ["systemctl status docker", "ls -la /var/run/docker.sock /run/docker.sock"],
    },
    "registry_unreachable": {
        "what": "Docker cannot pull images from the registry.",
        "next": "Check DNS resolution and the daemon DNS settings in {path}.",
        "diagnostics": ["docker info", "nslookup registry-1.docker.io", "cat {path}"],
    },
    "tailnet_unavailable": {
        "what": "Could not determine the Tailscale IPv4 address.",
        "next": "Make sure Tailscale is installed and logged in, or pass `--address` explicitly.",
        "diagnostics": ["tailscale status", "tailscale ip -4"],
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = str(template["what"]).format(**kwargs)
    next_step = str(template["next"]).format(**kwargs)
    return f"{what} Suggested action: {next_step}"


def diagnostics_for(code: str, **kwargs: str) -> List[str]:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    return [command.format(**kwargs) for command in _ERROR_MESSAGES[code]["diagnostics"]]
