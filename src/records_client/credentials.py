"""
Credential resolution: configuration in, immutable ConnectionProfile out.

Three modes are supported:
1. ``plaintext``: password used as is
2. ``encrypted``: password is a ciphertext decrypted with a key from a file
3. ``iam-token``: a short-lived RDS IAM token replaces the password and TLS is
   verified against a certificate bundle
"""

from __future__ import annotations

import ssl
import time
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .crypto import decrypt_password, encrypt_password
from .errors import ConfigurationError, CredentialError, TokenIssuanceFailed, TrustStoreInvalid
from .models import AuthMode, ConnectionProfile

IAM_TOKEN_TTL_SEC = 15 * 60


@dataclass(frozen=True)
class AuthConfig:
    host: str
    database: str
    username: str
    port: int = 5432
    transport: str = "tcp"
    auth_mode: AuthMode = AuthMode.PLAINTEXT
    password: Optional[str] = None
    encrypt_secret_path: Optional[str] = None
    region: Optional[str] = None
    aws_certificate_path: Optional[str] = None
    app_name: str = "sqlrecords"
    connect_timeout: int = 10


def load_trust_store(path: Optional[str]) -> str:
    """Check that ``path`` holds loadable CA certificates and return it."""
    if not path:
        raise TrustStoreInvalid("iam-token mode requires aws_certificate_path")
    try:
        ssl.create_default_context(cafile=path)
    except (OSError, ssl.SSLError) as e:
        raise TrustStoreInvalid(f"cannot load certificate bundle {path}: {e}") from e
    return path


def generate_iam_token(host: str, port: int, user: str, region: Optional[str]) -> str:
    """
    Mint an RDS IAM authentication token using the default AWS credential chain.

    Tokens are valid for 15 minutes and only for opening new connections.
    """
    from boto3 import client
    from botocore.exceptions import BotoCoreError, ClientError

    if not region:
        raise TokenIssuanceFailed("iam-token mode requires a region")
    try:
        rds = client("rds", region_name=region)
        return rds.generate_db_auth_token(DBHostname=host, Port=port, DBUsername=user)
    except (BotoCoreError, ClientError) as e:
        raise TokenIssuanceFailed(f"failed to create authentication token: {e}") from e


def _log_encryption_hint(cfg: AuthConfig) -> None:
    # operator convenience: print the ciphertext to paste into an `encrypted` config
    try:
        enc = encrypt_password(cfg.password or "", cfg.encrypt_secret_path)
    except CredentialError as e:
        logger.warning(f"Could not compute encrypted password hint: {e}")
        return
    logger.info(
        "The plaintext password can be replaced with this encrypted password "
        f"(set password_type: encrypted): {enc}"
    )


def resolve_profile(cfg: AuthConfig) -> ConnectionProfile:
    """Build the ConnectionProfile for ``cfg.auth_mode``."""
    common = dict(
        host=cfg.host,
        port=cfg.port,
        database=cfg.database,
        username=cfg.username,
        transport=cfg.transport,
        app_name=cfg.app_name,
        connect_timeout=cfg.connect_timeout,
    )

    if cfg.auth_mode is AuthMode.PLAINTEXT:
        if cfg.encrypt_secret_path:
            _log_encryption_hint(cfg)
        profile = ConnectionProfile(password=cfg.password or "", **common)

    elif cfg.auth_mode is AuthMode.ENCRYPTED:
        if not cfg.password or not cfg.encrypt_secret_path:
            raise ConfigurationError(
                "encrypted mode requires both password ciphertext and encrypt_secret_path"
            )
        plain = decrypt_password(cfg.password, cfg.encrypt_secret_path)
        profile = ConnectionProfile(password=plain, **common)

    elif cfg.auth_mode is AuthMode.IAM_TOKEN:
        bundle = load_trust_store(cfg.aws_certificate_path)
        issued = time.time()
        token = generate_iam_token(cfg.host, cfg.port, cfg.username, cfg.region)
        profile = ConnectionProfile(
            password=token,
            sslmode="verify-full",
            sslrootcert=bundle,
            credential_expires_at=issued + IAM_TOKEN_TTL_SEC,
            **common,
        )

    else:
        raise ConfigurationError(f"unsupported authentication mode: {cfg.auth_mode}")

    logger.info(f"Resolved connection profile ({cfg.auth_mode.value}): {profile.describe()}")
    return profile
