from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Optional

import typer
import uvicorn
import yaml

from src.common.config import StorageDefaults
from src.common.logs import configure_logging

from .mutator import Mutator
from .patch import PatchError, apply_patch
from .review import AdmissionRequest, GroupVersionKind

app = typer.Typer(help="Mutating admission webhook that converts emptyDir volumes to PVCs.")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", envvar="WEBHOOK_HOST", help="Interface to bind."),
    port: int = typer.Option(9443, envvar="WEBHOOK_PORT", help="Port to listen on."),
    cert_file: Optional[Path] = typer.Option(
        None,
        "--cert-file",
        envvar="TLS_CERT_FILE",
        help="TLS certificate (the API server only calls webhooks over HTTPS).",
    ),
    key_file: Optional[Path] = typer.Option(
        None,
        "--key-file",
        envvar="TLS_KEY_FILE",
        help="TLS private key matching --cert-file.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default: LOG_LEVEL or INFO)."),
) -> None:
    if (cert_file is None) != (key_file is None):
        raise typer.BadParameter("--cert-file and --key-file must be given together.")
    for path in (cert_file, key_file):
        if path is not None and not path.exists():
            raise typer.BadParameter(f"TLS file not found: {path}")
    try:
        configure_logging(log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc

    from .server import app as webhook_app

    uvicorn.run(
        webhook_app,
        host=host,
        port=port,
        ssl_certfile=str(cert_file) if cert_file else None,
        ssl_keyfile=str(key_file) if key_file else None,
        log_config=None,
    )


@app.command("mutate-file")
def mutate_file(
    manifest: Path = typer.Argument(..., help="Pod manifest (YAML or JSON)."),
    namespace: str = typer.Option("default", help="Namespace used when the manifest has none."),
    size: Optional[str] = typer.Option(None, help="Default claim size override."),
    storage_class: Optional[str] = typer.Option(None, help="Default storage class override."),
    access_modes: Optional[str] = typer.Option(None, help="Default access modes override."),
    apply: bool = typer.Option(False, "--apply", help="Print the patched manifest instead of the patch."),
) -> None:
    """Preview the patch the webhook would return for a manifest."""

    try:
        document = yaml.safe_load(manifest.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise typer.BadParameter(f"Cannot read manifest {manifest}: {exc}") from exc
    if not isinstance(document, dict):
        raise typer.BadParameter("Manifest must be a single mapping document.")

    mutator = Mutator(StorageDefaults.from_env(size=size, storage_class=storage_class, access_modes=access_modes))
    request = AdmissionRequest(
        uid=str(uuid.uuid4()),
        kind=GroupVersionKind(version="v1", kind=str(document.get("kind") or "")),
        namespace=namespace,
        operation="CREATE",
        object=document,
    )
    response = mutator.mutate(request)
    if not response.allowed:
        message = response.status.message if response.status else "denied"
        typer.echo(f"Admission denied: {message}", err=True)
        raise typer.Exit(code=1)

    patch = json.loads(response.decoded_patch() or b"[]")
    if not apply:
        typer.echo(json.dumps(patch, indent=2))
        return
    try:
        patched = apply_patch(document, patch)
    except PatchError as exc:
        typer.echo(f"Patch does not apply: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(yaml.safe_dump(patched, sort_keys=False))


if __name__ == "__main__":  # pragma: no cover
    app()
