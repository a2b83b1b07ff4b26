"""
Unit tests for credential resolution (plaintext, encrypted, iam-token).
"""

import datetime as dt
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import NoCredentialsError
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from records_client.credentials import AuthConfig, load_trust_store, resolve_profile
from records_client.crypto import encrypt_password, generate_key
from records_client.errors import (
    ConfigurationError,
    DecryptionFailed,
    SecretUnavailable,
    TokenIssuanceFailed,
    TrustStoreInvalid,
)
from records_client.models import AuthMode


def _write_ca_bundle(path):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "test-root")])
    now = dt.datetime.now(dt.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    return path


def _cfg(**kw):
    base = dict(host="db.local", database="employees", username="otel")
    base.update(kw)
    return AuthConfig(**base)


def test_plaintext_password_used_as_is():
    p = resolve_profile(_cfg(password="otel"))
    assert p.password.get_secret_value() == "otel"
    assert p.sslmode is None
    assert p.credential_expires_at is None
    assert not p.credential_expired()


def test_plaintext_with_secret_path_logs_ciphertext_hint(tmp_path, log_messages):
    key = generate_key(tmp_path / "secret.txt")
    p = resolve_profile(_cfg(password="otel", encrypt_secret_path=str(key)))
    assert p.password.get_secret_value() == "otel"
    assert any("can be replaced with this encrypted password" in m for m in log_messages)


def test_hint_failure_does_not_block_startup(tmp_path, log_messages):
    p = resolve_profile(_cfg(password="otel", encrypt_secret_path=str(tmp_path / "missing.txt")))
    assert p.password.get_secret_value() == "otel"
    assert any("Could not compute encrypted password hint" in m for m in log_messages)


def test_encrypted_password_is_decrypted(tmp_path):
    key = generate_key(tmp_path / "secret.txt")
    enc = encrypt_password("otel", key)
    p = resolve_profile(
        _cfg(auth_mode=AuthMode.ENCRYPTED, password=enc, encrypt_secret_path=str(key))
    )
    assert p.password.get_secret_value() == "otel"


def test_encrypted_requires_secret_path():
    with pytest.raises(ConfigurationError):
        resolve_profile(_cfg(auth_mode=AuthMode.ENCRYPTED, password="abc"))


def test_encrypted_missing_key_file(tmp_path):
    with pytest.raises(SecretUnavailable):
        resolve_profile(
            _cfg(
                auth_mode=AuthMode.ENCRYPTED,
                password="abc",
                encrypt_secret_path=str(tmp_path / "missing.txt"),
            )
        )


def test_encrypted_wrong_key(tmp_path):
    enc = encrypt_password("otel", generate_key(tmp_path / "a.txt"))
    other = generate_key(tmp_path / "b.txt")
    with pytest.raises(DecryptionFailed):
        resolve_profile(
            _cfg(auth_mode=AuthMode.ENCRYPTED, password=enc, encrypt_secret_path=str(other))
        )


@patch("boto3.client")
def test_iam_token_profile(mock_client, tmp_path):
    bundle = _write_ca_bundle(tmp_path / "global-bundle.pem")
    rds = MagicMock()
    rds.generate_db_auth_token.return_value = "iam-token-value"
    mock_client.return_value = rds

    before = time.time()
    p = resolve_profile(
        _cfg(
            auth_mode=AuthMode.IAM_TOKEN,
            region="us-east-1",
            aws_certificate_path=str(bundle),
        )
    )

    mock_client.assert_called_once_with("rds", region_name="us-east-1")
    rds.generate_db_auth_token.assert_called_once_with(
        DBHostname="db.local", Port=5432, DBUsername="otel"
    )
    assert p.password.get_secret_value() == "iam-token-value"
    assert p.sslmode == "verify-full"
    assert p.sslrootcert == str(bundle)
    assert before + 15 * 60 <= p.credential_expires_at <= time.time() + 15 * 60
    assert not p.credential_expired()
    assert p.credential_expired(now=p.credential_expires_at)


@patch("boto3.client")
def test_iam_token_issuance_failure(mock_client, tmp_path):
    bundle = _write_ca_bundle(tmp_path / "global-bundle.pem")
    rds = MagicMock()
    rds.generate_db_auth_token.side_effect = NoCredentialsError()
    mock_client.return_value = rds

    with pytest.raises(TokenIssuanceFailed):
        resolve_profile(
            _cfg(auth_mode=AuthMode.IAM_TOKEN, region="us-east-1", aws_certificate_path=str(bundle))
        )


def test_iam_token_requires_region(tmp_path):
    bundle = _write_ca_bundle(tmp_path / "global-bundle.pem")
    with pytest.raises(TokenIssuanceFailed, match="region"):
        resolve_profile(_cfg(auth_mode=AuthMode.IAM_TOKEN, aws_certificate_path=str(bundle)))


def test_trust_store_missing(tmp_path):
    with pytest.raises(TrustStoreInvalid):
        load_trust_store(str(tmp_path / "missing.pem"))


def test_trust_store_not_pem(tmp_path):
    p = tmp_path / "bundle.pem"
    p.write_text("not a certificate")
    with pytest.raises(TrustStoreInvalid):
        load_trust_store(str(p))


def test_trust_store_required_for_iam():
    with pytest.raises(TrustStoreInvalid):
        resolve_profile(_cfg(auth_mode=AuthMode.IAM_TOKEN, region="us-east-1"))
