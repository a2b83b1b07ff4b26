import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger

from records_client.crypto import encrypt_password, generate_key as write_key
from records_client.errors import ConfigurationError, CredentialError
from receiverctl.config import load_settings
from receiverctl.runtime import poll_once as run_poll_once, serve

app = typer.Typer(help="SQL records receiver CLI (polling, config checks, password encryption)")


def _setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@app.command()
def run(
    config: Path = typer.Option(..., "--config", "-c", help="Receiver YAML config"),
    log_level: str = typer.Option("INFO", help="Log level"),
):
    """Poll the database on the configured interval until interrupted."""
    _setup_logging(log_level)
    try:
        settings = load_settings(config)
        asyncio.run(serve(settings))
    except (ConfigurationError, CredentialError) as e:
        logger.error(f"Failed to start receiver: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


@app.command("poll-once")
def poll_once(
    config: Path = typer.Option(..., "--config", "-c", help="Receiver YAML config"),
    log_level: str = typer.Option("INFO", help="Log level"),
):
    """Run a single polling cycle and exit."""
    _setup_logging(log_level)
    try:
        settings = load_settings(config)
        results = asyncio.run(run_poll_once(settings))
    except (ConfigurationError, CredentialError) as e:
        logger.error(f"Poll failed: {e}")
        sys.exit(1)

    if not results:
        logger.warning("No queries were polled")
        sys.exit(1)
    for query_id, res in results.items():
        outcome = res.outcome.value if res else "skipped"
        logger.info(f"{query_id}: {outcome}")


@app.command()
def validate(config: Path = typer.Option(..., "--config", "-c", help="Receiver YAML config")):
    """Load and validate a config file without connecting."""
    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.success(
        f"Config OK: {settings.auth_mode.value} auth, {settings.dbhost}:{settings.dbport}/"
        f"{settings.database}, interval {settings.collection_interval}s"
    )
    for q in settings.db_queries:
        if q.incremental:
            start = q.initial_value if q.initial_value is not None else "-"
            logger.info(
                f"  {q.query_id}: incremental on {q.cursor_column} "
                f"({q.cursor_type.value}, start={start})"
            )
        else:
            logger.info(f"  {q.query_id}: snapshot")


@app.command("encrypt-password")
def encrypt(
    secret_path: Path = typer.Option(..., "--secret-path", "-s", help="Key file"),
    password: str = typer.Option(..., prompt=True, hide_input=True),
):
    """Print the ciphertext of a password for `password_type: encrypted`."""
    try:
        typer.echo(encrypt_password(password, secret_path))
    except CredentialError as e:
        logger.error(f"Failed to encrypt password: {e}")
        sys.exit(1)


@app.command("generate-key")
def generate_key(path: Path = typer.Argument(..., help="Where to write the key file")):
    """Write a new encryption key file."""
    if path.exists():
        logger.error(f"Refusing to overwrite existing key file {path}")
        sys.exit(1)
    write_key(path)
    logger.success(f"Wrote encryption key to {path}")


if __name__ == "__main__":
    app()
