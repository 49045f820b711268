"""Tests for the TLS policy module."""

from __future__ import annotations

import logging
import ssl
import warnings
from pathlib import Path

import pytest

from maillib.ssl import (
    DEFAULT_PROTOCOLS,
    MIN_PEM_SIZE,
    TLSProtocol,
    build_ssl_context,
    parse_protocols,
    protocol_names,
    validate_ca_bundle_path,
    validate_ssl_verify,
)

FAKE_PEM = "-----BEGIN CERTIFICATE-----\n" + "A" * 64 + "\n-----END CERTIFICATE-----\n"


class TestParseProtocols:
    """Tests for protocol name parsing."""

    @pytest.mark.parametrize(
        ("names", "expected"),
        [
            (["TLSv1.2", "TLSv1.3"], DEFAULT_PROTOCOLS),
            (["tls1.3"], TLSProtocol.TLSv1_3),
            (["TLSv1_1", TLSProtocol.TLSv1], TLSProtocol.TLSv1 | TLSProtocol.TLSv1_1),
        ],
    )
    def test_parses_aliases(self, names: list, expected: TLSProtocol) -> None:
        assert parse_protocols(names) == expected

    def test_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown TLS protocol"):
            parse_protocols(["SSLv3"])

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError, match="At least one"):
            parse_protocols([])

    def test_protocol_names_are_ordered(self) -> None:
        assert protocol_names(TLSProtocol.TLSv1_3 | TLSProtocol.TLSv1_1) == ["TLSv1_1", "TLSv1_3"]


class TestValidateSSLVerify:
    """Tests for validate_ssl_verify function."""

    def test_accepts_true_without_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert validate_ssl_verify(True) is True
        assert caplog.text == ""

    def test_false_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert validate_ssl_verify(False) is False
        assert "MITM" in caplog.text

    @pytest.mark.parametrize("value", ["false", 0, None])
    def test_rejects_non_bool(self, value: object) -> None:
        with pytest.raises(TypeError, match="must be bool"):
            validate_ssl_verify(value)


class TestValidateCABundlePath:
    """Tests for CA bundle path validation."""

    def test_valid_bundle(self, tmp_path: Path) -> None:
        bundle = tmp_path / "ca.pem"
        bundle.write_text(FAKE_PEM, encoding="utf-8")
        assert validate_ca_bundle_path(str(bundle)) == str(bundle.resolve())

    def test_rejects_non_string(self) -> None:
        with pytest.raises(TypeError):
            validate_ca_bundle_path(Path("/tmp/ca.pem"))  # type: ignore[arg-type]

    @pytest.mark.parametrize(("value", "message"), [("", "cannot be empty"), ("a\x00b", "null byte")])
    def test_rejects_bad_strings(self, value: str, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            validate_ca_bundle_path(value)

    def test_rejects_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="does not exist"):
            validate_ca_bundle_path(str(tmp_path / "missing.pem"))

    def test_rejects_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="not directory"):
            validate_ca_bundle_path(str(tmp_path))

    def test_rejects_small_file(self, tmp_path: Path) -> None:
        bundle = tmp_path / "tiny.pem"
        bundle.write_text("x" * (MIN_PEM_SIZE - 1), encoding="utf-8")
        with pytest.raises(ValueError, match="too small"):
            validate_ca_bundle_path(str(bundle))

    def test_rejects_binary(self, tmp_path: Path) -> None:
        bundle = tmp_path / "bin.pem"
        bundle.write_bytes(b"\xff\xfe" * MIN_PEM_SIZE)
        with pytest.raises(ValueError, match="not valid text"):
            validate_ca_bundle_path(str(bundle))

    def test_rejects_non_pem_text(self, tmp_path: Path) -> None:
        bundle = tmp_path / "plain.pem"
        bundle.write_text("not a certificate " * 10, encoding="utf-8")
        with pytest.raises(ValueError, match="PEM"):
            validate_ca_bundle_path(str(bundle))


class TestBuildSSLContext:
    """Tests for build_ssl_context."""

    def test_default_context_verifies(self) -> None:
        context = build_ssl_context()
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2
        assert context.maximum_version == ssl.TLSVersion.TLSv1_3

    def test_single_protocol_pins_range(self) -> None:
        context = build_ssl_context(TLSProtocol.TLSv1_3)
        assert context.minimum_version == ssl.TLSVersion.TLSv1_3
        assert context.maximum_version == ssl.TLSVersion.TLSv1_3

    def test_gap_in_protocol_set_is_excluded(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            context = build_ssl_context(TLSProtocol.TLSv1 | TLSProtocol.TLSv1_3)
        assert context.minimum_version == ssl.TLSVersion.TLSv1
        assert context.maximum_version == ssl.TLSVersion.TLSv1_3
        assert context.options & ssl.OP_NO_TLSv1_1
        assert context.options & ssl.OP_NO_TLSv1_2

    def test_contiguous_set_excludes_nothing(self) -> None:
        context = build_ssl_context(TLSProtocol.TLSv1_1 | TLSProtocol.TLSv1_2)
        assert context.minimum_version == ssl.TLSVersion.TLSv1_1
        assert context.maximum_version == ssl.TLSVersion.TLSv1_2
        assert not context.options & ssl.OP_NO_TLSv1_2

    def test_verification_disabled(self) -> None:
        context = build_ssl_context(verify=False)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_empty_protocol_set(self) -> None:
        with pytest.raises(ValueError, match="At least one"):
            build_ssl_context(TLSProtocol(0))

    def test_invalid_ca_bundle(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="does not exist"):
            build_ssl_context(ca_bundle=str(tmp_path / "nope.pem"))
