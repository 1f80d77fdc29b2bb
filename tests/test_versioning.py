import pytest

from app.doctrack.errors import ValidationFailed
from app.doctrack.modules.document_control.service import (
    format_document_number,
    initial_version,
    next_version,
    normalize_document_number,
    normalize_prefix,
    normalize_project_code,
    parse_version,
    sanitize_attachment_filename,
    validate_sha256,
    version_matches_scheme,
)


def test_initial_versions_per_scheme():
    assert initial_version(False) == "vA"
    assert initial_version(True) == "v1"


@pytest.mark.parametrize(
    "current,is_production,expected",
    [
        ("vA", False, "vB"),
        ("vY", False, "vZ"),
        ("vZ", False, "vAA"),
        ("vAZ", False, "vBA"),
        ("v1", True, "v2"),
        ("v9", True, "v10"),
    ],
)
def test_next_version(current, is_production, expected):
    assert next_version(current, is_production=is_production) == expected


def test_next_version_never_mixes_schemes():
    with pytest.raises(ValidationFailed):
        next_version("vC", is_production=True)
    with pytest.raises(ValidationFailed):
        next_version("v3", is_production=False)


def test_parse_version_orders_letters_like_spreadsheet_columns():
    assert parse_version("vA") == ("prototype", 1)
    assert parse_version("vZ")[1] < parse_version("vAA")[1]
    assert parse_version("v12") == ("production", 12)


@pytest.mark.parametrize("bad", ["", "A", "v", "va", "v0", "v1A", "x1"])
def test_parse_version_rejects_garbage(bad):
    with pytest.raises(ValidationFailed):
        parse_version(bad)


def test_version_matches_scheme():
    assert version_matches_scheme("vB", is_production=False)
    assert not version_matches_scheme("vB", is_production=True)
    assert version_matches_scheme("v4", is_production=True)
    assert not version_matches_scheme("nope", is_production=True)


def test_document_number_formatting_and_normalizing():
    assert format_document_number("FORM", 1) == "FORM-00001"
    assert format_document_number("WI", 42, 3) == "WI-042"
    assert normalize_document_number(" form-00007 ") == "FORM-00007"
    with pytest.raises(ValidationFailed):
        normalize_document_number("FORM-7")


def test_prefix_and_project_code_rules():
    assert normalize_prefix("proc") == "PROC"
    with pytest.raises(ValidationFailed):
        normalize_prefix("P")
    with pytest.raises(ValidationFailed):
        normalize_prefix("TOOLONGPREFIX")
    assert normalize_project_code(None) is None
    assert normalize_project_code("p-00042") == "P-00042"
    with pytest.raises(ValidationFailed):
        normalize_project_code("P-42")


def test_attachment_helpers():
    assert sanitize_attachment_filename("../../etc/passwd") == "etc_passwd"
    assert sanitize_attachment_filename("") == "document.bin"
    assert validate_sha256("A" * 64) == "a" * 64
    with pytest.raises(ValidationFailed):
        validate_sha256("abc")
