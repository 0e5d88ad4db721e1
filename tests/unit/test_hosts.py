"""Tests for the HostRecord model and its editing helpers."""

from __future__ import annotations

import pytest

from sshm.core.hosts import (
    HostRecord,
    format_options_for_command,
    parse_options_from_command,
    parse_tags,
    validate_host,
)
from sshm.errors import ValidationError


def test_renamed_copies_lists() -> None:
    original = HostRecord(name="a", hostname="h", tags=["x"], options=["Compression yes"])

    copy = original.renamed("b")
    copy.tags.append("y")

    assert copy.name == "b"
    assert original.tags == ["x"]
    assert copy.shares_fields_with(HostRecord(name="z", hostname="h", tags=["x", "y"], options=["Compression yes"]))


@pytest.mark.parametrize(
    "record",
    [
        HostRecord(name="", hostname="h"),
        HostRecord(name="two words", hostname="h"),
        HostRecord(name="#comment", hostname="h"),
        HostRecord(name="ok", hostname=" "),
        HostRecord(name="ok", hostname="h", port="ssh"),
        HostRecord(name="ok", hostname="h", port="0"),
        HostRecord(name="ok", hostname="h", port="70000"),
    ],
)
def test_validate_host_rejects_bad_records(record: HostRecord) -> None:
    with pytest.raises(ValidationError):
        validate_host(record)


def test_validate_host_accepts_minimal_record() -> None:
    validate_host(HostRecord(name="ok", hostname="h"))
    validate_host(HostRecord(name="ok", hostname="h", port="65535"))


def test_parse_tags() -> None:
    assert parse_tags(" prod, web ,, db ") == ["prod", "web", "db"]
    assert parse_tags("") == []


def test_format_options_for_command() -> None:
    options = ["StrictHostKeyChecking no", "ServerAliveInterval=60"]

    assert format_options_for_command(options) == (
        "-o StrictHostKeyChecking=no -o ServerAliveInterval=60"
    )


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("-o StrictHostKeyChecking=no -o Compression=yes", ["StrictHostKeyChecking no", "Compression yes"]),
        ("-oCompression=yes", ["Compression yes"]),
        ("ForwardAgent yes, Compression=yes", ["ForwardAgent yes", "Compression yes"]),
        ("", []),
    ],
)
def test_parse_options_from_command(text: str, expected: list[str]) -> None:
    assert parse_options_from_command(text) == expected


def test_parse_options_round_trips_formatting() -> None:
    options = ["StrictHostKeyChecking no", "ServerAliveInterval 60"]

    assert parse_options_from_command(format_options_for_command(options)) == [
        "StrictHostKeyChecking no",
        "ServerAliveInterval 60",
    ]


def test_parse_options_requires_values() -> None:
    with pytest.raises(ValidationError):
        parse_options_from_command("Compression")
