"""CLI entry point using Typer."""

import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import List, Optional

import typer

from agentlink.certificate import Certificate, parse_certificate
from agentlink.chain import is_from_ca
from agentlink.cipher import decrypt_text, encrypt_text
from agentlink.communication import Communication, download_file, get_text
from agentlink.models import AgentConfig
from agentlink.signature import extract_signature
from agentlink.trust_store import RootStore, default_store, get_root_certificate, inject_ca

app = typer.Typer(help="Node agent secure channel tool")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNTRUSTED = 2

StoreOption = typer.Option(
    None, "--store", "-s", help="Root certificate store directory (default: AGENTLINK_ROOT_STORE)"
)


@app.callback()
def main(debug: bool = typer.Option(False, "--debug", help="Enable debug logging")):
    """Transport binding and certificate trust utilities."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("agentlink").setLevel(logging.DEBUG)


def _load_certificate(path: Path, key_path: Optional[Path] = None) -> Certificate:
    try:
        return Certificate.from_file(path, key_path=key_path)
    except Exception as e:
        logger.error(f"Could not load certificate {path}: {e}")
        sys.exit(EXIT_FAILURE)


def _root_store(store: Optional[Path]) -> RootStore:
    if store is not None:
        return RootStore(store)
    return default_store()


def _print_certificate(cert: Certificate) -> None:
    info = parse_certificate(cert)
    typer.echo(json.dumps(asdict(info), indent=2, default=str))


@app.command()
def verify(
    authority: Path = typer.Argument(..., help="Pinned CA certificate (PEM or DER)"),
    certificate: Path = typer.Argument(..., help="Certificate to validate (PEM or DER)"),
    store: Optional[Path] = typer.Option(None, "--store", "-s", help="Also trust roots from this store"),
    intermediate: Optional[List[Path]] = typer.Option(None, "--intermediate", "-i", help="Intermediate certificate"),
):
    """Check that CERTIFICATE chains up to AUTHORITY."""
    intermediates = [_load_certificate(p) for p in intermediate or []]
    trusted = is_from_ca(
        _load_certificate(authority),
        _load_certificate(certificate),
        store=RootStore(store) if store else None,
        intermediates=intermediates,
    )
    typer.echo("TRUSTED" if trusted else "UNTRUSTED")
    sys.exit(EXIT_OK if trusted else EXIT_UNTRUSTED)


@app.command()
def encrypt(
    certificate: Path = typer.Argument(..., help="Recipient certificate"),
    text: str = typer.Argument(..., help="UTF-8 text to encrypt"),
):
    """Encrypt TEXT for CERTIFICATE, printing hex."""
    cert = _load_certificate(certificate)
    try:
        typer.echo(encrypt_text(cert, text))
    except Exception as e:
        logger.error(f"Encryption failed: {e}")
        sys.exit(EXIT_FAILURE)


@app.command()
def decrypt(
    certificate: Path = typer.Argument(..., help="Certificate matching the private key"),
    data: str = typer.Argument(..., help="Hex ciphertext"),
    key: Optional[Path] = typer.Option(None, "--key", "-k", help="PEM private key"),
):
    """Decrypt hex DATA with the private key of CERTIFICATE."""
    cert = _load_certificate(certificate, key_path=key)
    try:
        typer.echo(decrypt_text(cert, data))
    except Exception as e:
        logger.error(f"Decryption failed: {e}")
        sys.exit(EXIT_FAILURE)


@app.command("root-cert")
def root_cert(
    name: str = typer.Argument(..., help="Subject name to search for"),
    store: Optional[Path] = StoreOption,
):
    """Look up a root certificate by subject name."""
    cert = get_root_certificate(name, _root_store(store))
    if cert is None:
        typer.echo(f"{name} not found", err=True)
        sys.exit(EXIT_FAILURE)
    _print_certificate(cert)


@app.command("inject-ca")
def inject(
    certificate: Path = typer.Argument(..., help="CA certificate to add"),
    store: Optional[Path] = StoreOption,
):
    """Add a CA certificate to the root store."""
    ok = inject_ca(_load_certificate(certificate), _root_store(store))
    sys.exit(EXIT_OK if ok else EXIT_FAILURE)


@app.command()
def signer(file: Path = typer.Argument(..., help="Signed file")):
    """Print the certificate that signed FILE."""
    cert = extract_signature(file)
    if cert is None:
        typer.echo(f"{file} is not signed", err=True)
        sys.exit(EXIT_FAILURE)
    _print_certificate(cert)


@app.command()
def fetch(url: str = typer.Argument(..., help="URL to retrieve")):
    """Print the text body of URL."""
    try:
        typer.echo(get_text(url))
    except Exception as e:
        logger.error(f"Could not fetch {url}: {e}")
        sys.exit(EXIT_FAILURE)


@app.command()
def download(
    url: str = typer.Argument(..., help="URL to download"),
    path: Path = typer.Argument(..., help="Destination file"),
):
    """Download URL to PATH."""
    ok = download_file(url, path)
    sys.exit(EXIT_OK if ok else EXIT_FAILURE)


@app.command()
def bind(
    server: Optional[str] = typer.Option(None, "--server", help="Server base URL (default: AGENTLINK_SERVER_URL)"),
    socket_path: Optional[str] = typer.Option(None, "--socket-path", help="WebSocket path"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Timeout in seconds"),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="HTTP proxy URL"),
):
    """Attach to the server, report the binding in use and detach."""
    overrides = {"server_url": server, "socket_path": socket_path, "timeout": timeout, "proxy": proxy}
    try:
        config = replace(
            AgentConfig.from_env(), **{k: v for k, v in overrides.items() if v is not None}
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(EXIT_FAILURE)

    session = Communication.from_config(config)
    if not session.bind_server_to_bus():
        typer.echo("No binding could attach", err=True)
        sys.exit(EXIT_FAILURE)
    typer.echo(session.active_binding.name)
    session.unbind_server_from_bus()


if __name__ == "__main__":
    app()
