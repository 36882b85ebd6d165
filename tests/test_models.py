from datetime import datetime

import pytest

from n8nselfhoster.errors import MissingConfiguration, SelfHosterError
from n8nselfhoster.models import (
    ComposeDescriptor,
    CredentialsRecord,
    DeploymentConfig,
    ExposureMode,
    PortBinding,
    format_access_url,
)


@pytest.mark.parametrize(
    ("host", "port", "expected"),
    [
        ("n8n.example.com", None, "https://n8n.example.com/"),
        ("203.0.113.7", None, "https://203.0.113.7/"),
        ("2607:fea8:1fdd:e520::c56c", None, "https://[2607:fea8:1fdd:e520::c56c]/"),
        ("[::1]", 5678, "https://[::1]:5678/"),
    ],
)
def test_format_access_url(host, port, expected):
    assert format_access_url("https", host, port) == expected


def test_exposure_modes_map_to_schemes():
    assert ExposureMode.PRIVATE.scheme == "https"
    assert ExposureMode.EXPOSED.scheme == "http"


def test_validated_defaults_empty_timezone_to_utc():
    config = DeploymentConfig("db", "admin", "n8n.example.com", "/opt/n8n", timezone="")

    assert config.validated().timezone == "UTC"


def test_validated_names_the_missing_field():
    config = DeploymentConfig("db", "   ", "n8n.example.com", "/opt/n8n")

    with pytest.raises(MissingConfiguration) as exc_info:
        config.validated()

    assert exc_info.value.field_name == "admin_password"
    assert "ADMIN_PASSWORD" in str(exc_info.value)


def test_credentials_record_lists_direct_url():
    record = CredentialsRecord(
        created_at=datetime(2024, 5, 1, 12, 30, 0),
        server_address="203.0.113.7",
        db_password="db",
        admin_password="admin",
        access_url="https://203.0.113.7/",
    )

    text = record.render(direct_port=5678)

    assert "Date: 2024-05-01 12:30:00\n" in text
    assert "Admin Username: admin\n" in text
    assert "Direct URL: https://203.0.113.7:5678 (if needed)" in text
    assert text.rstrip().endswith("delete this file after copying!")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("127.0.0.1:5678:5678", PortBinding("127.0.0.1", 5678, 5678)),
        ("5678:5678", PortBinding("", 5678, 5678)),
        ("[::1]:8080:5678", PortBinding("::1", 8080, 5678)),
    ],
)
def test_port_binding_parse(value, expected):
    assert PortBinding.parse(value) == expected


def test_port_binding_rejects_ranges():
    with pytest.raises(SelfHosterError, match="Unsupported port mapping"):
        PortBinding.parse("127.0.0.1:5678-5680:5678")


def test_descriptor_requires_services_mapping():
    with pytest.raises(SelfHosterError, match="services"):
        ComposeDescriptor.from_yaml("version: '3.8'\n")


def test_descriptor_rejects_multiple_public_ports():
    descriptor = ComposeDescriptor(
        {"services": {"n8n": {"ports": ["127.0.0.1:5678:5678", "127.0.0.1:5679:5679"]}}}
    )

    with pytest.raises(SelfHosterError, match="exactly one port"):
        descriptor.public_port()


def test_list_dependencies_have_no_condition():
    descriptor = ComposeDescriptor({"services": {"n8n": {"depends_on": ["postgres"]}}})

    assert descriptor.dependencies("n8n") == {"postgres": None}


def test_set_env_appends_missing_list_entry():
    descriptor = ComposeDescriptor({"services": {"n8n": {"environment": ["A=1"]}}})

    descriptor.set_env("n8n", "B", "2")

    assert descriptor.service("n8n")["environment"] == ["A=1", "B=2"]
    assert descriptor.get_env("n8n", "A") == "1"


def test_loaded_descriptor_keeps_scalar_text_and_layout():
    text = (
        "# deployment\n"
        "services:\n"
        "  n8n:\n"
        "    ports: ['127.0.0.1:5678:5678']\n"
        "    environment:\n"
        "      DB_POSTGRESDB_PASSWORD: 0777\n"
        "      N8N_BASIC_AUTH_ACTIVE: yes  # legacy flag\n"
    )

    descriptor = ComposeDescriptor.from_yaml(text)

    assert descriptor.get_env("n8n", "DB_POSTGRESDB_PASSWORD") == "0777"
    assert descriptor.get_env("n8n", "N8N_BASIC_AUTH_ACTIVE") == "yes"
    assert descriptor.to_yaml() == text


def test_edits_rewrite_only_the_changed_scalars():
    text = (
        "services:\n"
        "  n8n:\n"
        "    ports: ['127.0.0.1:5678:5678']\n"
        "    environment:\n"
        "      N8N_PROTOCOL: https  # default\n"
        "      N8N_PORT: 5678\n"
    )
    descriptor = ComposeDescriptor.from_yaml(text)

    descriptor.set_public_port(PortBinding("0.0.0.0", 5678, 5678))
    descriptor.set_env("n8n", "N8N_PROTOCOL", "http")
    descriptor.set_env("n8n", "N8N_HOST", "0.0.0.0")

    assert descriptor.to_yaml() == (
        "services:\n"
        "  n8n:\n"
        "    ports: ['0.0.0.0:5678:5678']\n"
        "    environment:\n"
        "      N8N_PROTOCOL: http  # default\n"
        "      N8N_PORT: 5678\n"
        "      N8N_HOST: 0.0.0.0\n"
    )


def test_missing_list_entry_is_added_with_the_same_indentation():
    text = "services:\n  n8n:\n    environment:\n      - A=1\n      - \"B=2\"\n    volumes: []\n"
    descriptor = ComposeDescriptor.from_yaml(text)

    descriptor.set_env("n8n", "WEBHOOK_URL", "http://100.64.1.5:5678/")

    assert descriptor.to_yaml() == (
        "services:\n  n8n:\n    environment:\n      - A=1\n      - \"B=2\"\n"
        "      - WEBHOOK_URL=http://100.64.1.5:5678/\n    volumes: []\n"
    )


def test_flow_environment_entries_are_quoted():
    descriptor = ComposeDescriptor.from_yaml("services:\n  n8n:\n    environment: [A=1]\n")

    descriptor.set_env("n8n", "A", "x,y")
    descriptor.set_env("n8n", "B", "2")

    assert descriptor.to_yaml() == 'services:\n  n8n:\n    environment: ["A=x,y", "B=2"]\n'


def test_copy_does_not_share_pending_edits():
    descriptor = ComposeDescriptor.from_yaml("services:\n  n8n:\n    environment:\n      A: '1'\n")

    duplicate = descriptor.copy()
    duplicate.set_env("n8n", "A", "2")

    assert descriptor.to_yaml() == "services:\n  n8n:\n    environment:\n      A: '1'\n"
    assert duplicate.to_yaml() == "services:\n  n8n:\n    environment:\n      A: '2'\n"


def test_environment_without_entries_cannot_be_extended_in_place():
    descriptor = ComposeDescriptor.from_yaml("services:\n  n8n:\n    image: n8nio/n8n\n")

    with pytest.raises(SelfHosterError, match="no environment entries"):
        descriptor.set_env("n8n", "N8N_HOST", "0.0.0.0")
