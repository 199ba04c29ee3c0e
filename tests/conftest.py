"""Pytest fixtures and configuration for mboxkit tests.

Provides mbox text builders, temporary archives, and config handling.
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from mboxkit.config import reset_config
from mboxkit.config_schema import AppConfig


def make_message(
    sender: str = "Alice Example <alice@example.com>",
    subject: str = "Hello",
    date: str = "Mon, 02 Jan 2023 10:00:00 +0000",
    body: str = "Hi there.",
    to: str | None = "bob@example.org",
    message_id: str | None = None,
    in_reply_to: str | None = None,
    references: str | None = None,
    extra_headers: list[str] | None = None,
    envelope: str | None = None,
) -> str:
    """Build one mbox message (envelope line, headers, blank line, body, newline)."""
    lines = [envelope or "From alice@example.com Mon Jan  2 10:00:00 2023"]
    lines.append(f"From: {sender}")
    if to is not None:
        lines.append(f"To: {to}")
    lines.append(f"Subject: {subject}")
    lines.append(f"Date: {date}")
    if message_id is not None:
        lines.append(f"Message-ID: {message_id}")
    if in_reply_to is not None:
        lines.append(f"In-Reply-To: {in_reply_to}")
    if references is not None:
        lines.append(f"References: {references}")
    lines.extend(extra_headers or [])
    return "\n".join(lines) + "\n\n" + body + "\n"


def make_archive(messages: list[str]) -> str:
    """Join messages the way mbox does: a blank line before each envelope."""
    return "\n".join(messages)


@pytest.fixture
def message_text() -> Callable[..., str]:
    """Return the make_message builder."""
    return make_message


@pytest.fixture
def archive_text() -> Callable[[list[str]], str]:
    """Return the make_archive builder."""
    return make_archive


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

reader:
  primary_encoding: "utf-8"
  fallback_encoding: "latin-1"

partition:
  undated_policy: "bucket"
  undated_label: "undated"

merge:
  sort_order: "date_asc"
  remove_duplicates: true
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "reader": {"primary_encoding": "utf-8", "fallback_encoding": "latin-1"},
        "partition": {"undated_policy": "bucket", "undated_label": "undated"},
        "merge": {"sort_order": "date_asc", "remove_duplicates": True},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the MBOXKIT_CONFIG_PATH environment variable."""
    old_value = os.environ.get("MBOXKIT_CONFIG_PATH")
    os.environ["MBOXKIT_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["MBOXKIT_CONFIG_PATH"]
    else:
        os.environ["MBOXKIT_CONFIG_PATH"] = old_value


@pytest.fixture
def three_message_archive() -> str:
    """Three messages over two months; one reply."""
    return make_archive(
        [
            make_message(
                sender="Alice <alice@example.com>",
                subject="Budget Q1",
                date="Mon, 02 Jan 2023 10:00:00 +0000",
                body="Draft attached.",
                message_id="<m1@example.com>",
            ),
            make_message(
                sender="Bob <bob@corp.org>",
                subject="Re: Budget Q1",
                date="Tue, 03 Jan 2023 09:30:00 +0000",
                body="Looks fine.",
                message_id="<m2@corp.org>",
                in_reply_to="<m1@example.com>",
                references="<m1@example.com>",
                envelope="From bob@corp.org Tue Jan  3 09:30:00 2023",
            ),
            make_message(
                sender="Carol <carol@example.com>",
                subject="Offsite",
                date="Wed, 01 Feb 2023 12:00:00 +0000",
                body="Where do we meet?",
                envelope="From carol@example.com Wed Feb  1 12:00:00 2023",
            ),
        ]
    )


@pytest.fixture
def write_archive(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes archive text to tmp_path/<name>."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
