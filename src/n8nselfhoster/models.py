"""Shared domain models for n8n self-hoster."""

import copy
import enum
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import yaml

from n8nselfhoster.constants import (
    ADMIN_USERNAME,
    APPLICATION_SERVICE,
    CONFIG_ENV_VARS,
    DEFAULT_TIMEZONE,
)
from n8nselfhoster.errors import MissingConfiguration, SelfHosterError
from n8nselfhoster.errors_catalog import actionable_error


class ExposureMode(str, enum.Enum):
    PRIVATE = "private"
    EXPOSED = "exposed"

    @property
    def scheme(self) -> str:
        return "https" if self is ExposureMode.PRIVATE else "http"


class PullOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def format_access_url(scheme: str, host: str, port: Optional[int] = None) -> str:
    """Builds the externally reachable URL, bracketing IPv6 literals."""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    authority = f"{host}:{port}" if port is not None else host
    return f"{scheme}://{authority}/"


@dataclass(frozen=True)
class DeploymentConfig:
    """Inputs for generating a deployment. Secrets are never defaulted."""

    db_password: Optional[str]
    admin_password: Optional[str]
    domain: Optional[str]
    install_dir: Optional[str]
    timezone: Optional[str] = DEFAULT_TIMEZONE

    REQUIRED_FIELDS = ("db_password", "admin_password", "domain", "install_dir")

    def validated(self) -> "DeploymentConfig":
        for name in self.REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or not str(value).strip():
                raise MissingConfiguration(
                    name,
                    actionable_error(
                        "missing_configuration",
                        field=name,
                        env_var=CONFIG_ENV_VARS[name],
                        key=name,
                    ),
                )

        if not self.timezone:
            return DeploymentConfig(
                db_password=self.db_password,
                admin_password=self.admin_password,
                domain=self.domain,
                install_dir=self.install_dir,
                timezone=DEFAULT_TIMEZONE,
            )
        return self

    @property
    def access_url(self) -> str:
        return format_access_url(ExposureMode.PRIVATE.scheme, str(self.domain))


@dataclass(frozen=True)
class CredentialsRecord:
    created_at: datetime
    server_address: str
    db_password: str
    admin_password: str
    access_url: str
    admin_username: str = ADMIN_USERNAME

    def render(self, direct_port: Optional[int] = None) -> str:
        lines = [
            "N8N Installation Credentials",
            "============================",
            f"Date: {self.created_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}",
            f"Server: {self.server_address}",
            "",
            f"Database Password: {self.db_password}",
            f"Admin Username: {self.admin_username}",
            f"Admin Password: {self.admin_password}",
            "",
            f"Access URL: {self.access_url}",
        ]
        if direct_port is not None:
            lines.append(f"Direct URL: {self.access_url.rstrip('/')}:{direct_port} (if needed)")
        lines.extend(
            [
                "",
                "IMPORTANT: Save these credentials securely and delete this file after copying!",
            ]
        )
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class PortBinding:
    host: str
    host_port: int
    container_port: int

    @classmethod
    def parse(cls, value: Any) -> "PortBinding":
        text = str(value)
        parts = text.rsplit(":", 2)
        try:
            if len(parts) == 3:
                return cls(parts[0].strip("[]"), int(parts[1]), int(parts[2]))
            if len(parts) == 2:
                return cls("", int(parts[0]), int(parts[1]))
            return cls("", int(parts[0]), int(parts[0]))
        except ValueError as exc:
            raise SelfHosterError(f"Unsupported port mapping in descriptor: {text}") from exc

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        prefix = f"{host}:" if host else ""
        return f"{prefix}{self.host_port}:{self.container_port}"


class _TextScalarLoader(yaml.SafeLoader):
    """SafeLoader that keeps numbers, booleans and dates as their source text."""


for _tag in ("bool", "int", "float", "timestamp"):
    _TextScalarLoader.add_constructor(
        f"tag:yaml.org,2002:{_tag}", _TextScalarLoader.construct_yaml_str
    )


def _render_scalar(value: str, style: Optional[str], flow: bool = False) -> str:
    """Formats `value` for the source text, keeping the original quoting style."""
    if style == "'":
        return "'" + value.replace("'", "''") + "'"
    if style != '"' and not flow:
        plain = yaml.safe_dump(value, width=float("inf")).splitlines()[0]
        if plain == value:
            return value
    return json.dumps(value)


class ComposeDescriptor:
    """Typed view over a parsed docker-compose document.

    A descriptor read with `from_yaml` keeps its source text. `set_env` and
    `set_public_port` then rewrite only the affected scalars in that text, so
    `to_yaml` returns every other line, comment and quote untouched. Numbers
    and booleans are read as the text they were written with.
    """

    def __init__(
        self,
        document: Dict[str, Any],
        source: Optional[str] = None,
        root: Optional[yaml.Node] = None,
    ):
        if not isinstance(document, dict) or not isinstance(document.get("services"), dict):
            raise SelfHosterError("Compose descriptor must be a mapping with a `services` section.")
        self.document = document
        self._source = source
        self._root = root
        self._edits: Dict[Tuple[int, int, str], str] = {}

    @classmethod
    def from_yaml(cls, text: str) -> "ComposeDescriptor":
        loader = _TextScalarLoader(text)
        try:
            root = loader.get_single_node()
            parsed = loader.construct_document(root) if root is not None else None
        except yaml.YAMLError as exc:
            raise SelfHosterError(f"Compose descriptor is not valid YAML: {exc}") from exc
        finally:
            loader.dispose()
        return cls(parsed, source=text, root=root)

    def to_yaml(self) -> str:
        if self._source is None:
            return yaml.safe_dump(self.document, sort_keys=False, default_flow_style=False)

        text = self._source
        ordered = sorted(
            enumerate(self._edits.items()),
            key=lambda item: (item[1][0][0], item[0]),
            reverse=True,
        )
        for _, ((start, end, _), replacement) in ordered:
            text = text[:start] + replacement + text[end:]
        return text

    def copy(self) -> "ComposeDescriptor":
        duplicate = ComposeDescriptor(copy.deepcopy(self.document), self._source, self._root)
        duplicate._edits = dict(self._edits)
        return duplicate

    def __eq__(self, other) -> bool:
        if not isinstance(other, ComposeDescriptor):
            return NotImplemented
        return self.document == other.document

    def service(self, name: str) -> Dict[str, Any]:
        try:
            return self.document["services"][name]
        except KeyError as exc:
            raise SelfHosterError(f"Service `{name}` is not defined in the descriptor.") from exc

    def dependencies(self, name: str) -> Dict[str, Optional[str]]:
        depends_on = self.service(name).get("depends_on") or {}
        if isinstance(depends_on, list):
            return {dependency: None for dependency in depends_on}
        return {
            dependency: (options or {}).get("condition")
            for dependency, options in depends_on.items()
        }

    def public_port(self, name: str = APPLICATION_SERVICE) -> PortBinding:
        ports = self.service(name).get("ports") or []
        if len(ports) != 1:
            raise SelfHosterError(
                f"Service `{name}` must publish exactly one port, found {len(ports)}."
            )
        return PortBinding.parse(ports[0])

    def set_public_port(self, binding: PortBinding, name: str = APPLICATION_SERVICE):
        self.public_port(name)
        self.service(name)["ports"] = [str(binding)]
        if self._source is not None:
            ports = self._node_at("services", name, "ports")
            self._patch_scalar(ports.value[0], str(binding), bool(ports.flow_style))

    def get_env(self, name: str, key: str) -> Optional[str]:
        environment = self.service(name).get("environment") or {}
        if isinstance(environment, dict):
            value = environment.get(key)
            return None if value is None else str(value)

        prefix = f"{key}="
        for entry in environment:
            if str(entry).startswith(prefix):
                return str(entry)[len(prefix):]
        return None

    def set_env(self, name: str, key: str, value: str):
        service = self.service(name)
        environment = service.setdefault("environment", {})
        if isinstance(environment, dict):
            environment[key] = value
        else:
            prefix = f"{key}="
            for index, entry in enumerate(environment):
                if str(entry).startswith(prefix):
                    environment[index] = f"{key}={value}"
                    break
            else:
                environment.append(f"{key}={value}")

        if self._source is not None:
            self._patch_env(name, key, value)

    def _node_at(self, *path: str) -> Optional[yaml.Node]:
        node = self._root
        for key in path:
            if not isinstance(node, yaml.MappingNode):
                return None
            node = next(
                (
                    value_node
                    for key_node, value_node in node.value
                    if isinstance(key_node, yaml.ScalarNode) and key_node.value == key
                ),
                None,
            )
        return node

    def _patch_scalar(self, node: yaml.Node, value: str, flow: bool):
        if not isinstance(node, yaml.ScalarNode) or node.style in ("|", ">"):
            raise SelfHosterError(f"Cannot rewrite `{value}` in place: unsupported YAML layout.")

        rendered = _render_scalar(value, node.style, flow)
        start, end = node.start_mark.index, node.end_mark.index
        if start == end:
            rendered = f" {rendered}"
        self._edits[(start, end, "")] = rendered

    def _patch_env(self, name: str, key: str, value: str):
        env_node = self._node_at("services", name, "environment")
        if not isinstance(env_node, (yaml.MappingNode, yaml.SequenceNode)) or not env_node.value:
            raise SelfHosterError(
                f"Cannot add {key} to service `{name}`: it has no environment entries to extend."
            )
        flow = bool(env_node.flow_style)

        if isinstance(env_node, yaml.MappingNode):
            for key_node, value_node in env_node.value:
                if key_node.value == key:
                    self._patch_scalar(value_node, value, flow)
                    return
            last_key, last = env_node.value[-1]
            entry_start = last_key.start_mark.index
            entry = f"{key}: {_render_scalar(value, None, flow)}"
        else:
            prefix = f"{key}="
            for item in env_node.value:
                if isinstance(item, yaml.ScalarNode) and item.value.startswith(prefix):
                    self._patch_scalar(item, f"{key}={value}", flow)
                    return
            last = env_node.value[-1]
            entry_start = last.start_mark.index
            entry = _render_scalar(f"{key}={value}", None, flow)

        if not isinstance(last, yaml.ScalarNode) or last.style in ("|", ">"):
            raise SelfHosterError(f"Cannot add {key} to service `{name}`: unsupported YAML layout.")

        if flow:
            position = last.end_mark.index
            text = f", {entry}"
        else:
            line_start = self._source.rfind("\n", 0, entry_start) + 1
            position = self._source.find("\n", last.end_mark.index)
            if position == -1:
                position = len(self._source)
            text = "\n" + self._source[line_start:entry_start] + entry
        self._edits[(position, position, key)] = text


@dataclass
class PrefetchReport:
    outcomes: Dict[str, PullOutcome] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> List[str]:
        return [ref for ref, outcome in self.outcomes.items() if outcome is not PullOutcome.SUCCESS]

    @property
    def succeeded(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ProbeResult:
    url: str
    reachable: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    timed_out: bool = False


@dataclass(frozen=True)
class ApplyResult:
    probe: ProbeResult

    @property
    def ready(self) -> bool:
        return self.probe.reachable


@dataclass(frozen=True)
class ReconfigureResult:
    descriptor: ComposeDescriptor
    mode: ExposureMode
    address: str
    access_url: str
    changed: bool
    backup_path: Optional[str] = None
    loopback_probe: Optional[ProbeResult] = None
    address_probe: Optional[ProbeResult] = None


@dataclass
class RestartReport:
    started: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
