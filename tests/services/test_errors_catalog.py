import pytest

from n8nselfhoster.errors_catalog import actionable_error, diagnostics_for


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("descriptor_not_found", path="/opt/n8n")

    assert "docker-compose.yml not found at /opt/n8n." in message
    assert "Suggested action:" in message


def test_diagnostics_are_formatted_with_path():
    commands = diagnostics_for("apply_failed", path="/opt/n8n")

    assert "cd /opt/n8n && docker compose ps" in commands


def test_unknown_catalog_key_raises():
    with pytest.raises(KeyError):
        actionable_error("nope")
