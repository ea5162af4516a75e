from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from caxton.services.crypto import PRIVATE_KEY_FILENAME, PUBLIC_KEY_FILENAME, CryptoContext
from caxton.services.logging import setup_logging
from caxton.services.pairing import open_code_store
from caxton.services.settings import load_settings

app = typer.Typer(help="Caxton push relay")


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="defaults to CAXTON_HOST or 0.0.0.0"),
    port: Optional[int] = typer.Option(None, "--port", help="defaults to PORT or 3000"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML settings file"),
):
    """Run the HTTP API."""
    settings = load_settings(config)
    setup_logging(settings.log_level, json_output=settings.log_json)

    from caxton.apps.api.server import create_app

    application = create_app(settings)
    uvicorn.run(application, host=host or settings.host, port=port or settings.port, log_config=None)


@app.command("keygen")
def keygen(
    out_dir: Path = typer.Option(Path("."), "--out-dir"),
    bits: int = typer.Option(2048, "--bits"),
    force: bool = typer.Option(False, "--force", help="overwrite existing key files"),
):
    """Generate the service keypair (private.key / public.key)."""
    targets = [out_dir / PRIVATE_KEY_FILENAME, out_dir / PUBLIC_KEY_FILENAME]
    existing = [str(p) for p in targets if p.exists()]
    if existing and not force:
        typer.echo(f"refusing to overwrite {', '.join(existing)} (use --force)", err=True)
        raise typer.Exit(code=1)
    private_path, public_path = CryptoContext.generate(bits).write(out_dir)
    typer.echo(f"wrote {private_path} and {public_path}")


@app.command("sweep")
def sweep(config: Optional[Path] = typer.Option(None, "--config", help="YAML settings file")):
    """Delete expired pairing codes once."""
    settings = load_settings(config)
    setup_logging(settings.log_level, json_output=settings.log_json)
    store = open_code_store(settings.database_url, lifetime=settings.code_lifetime)
    try:
        removed = asyncio.run(store.sweep_older_than(settings.code_lifetime))
    finally:
        store.close()
    typer.echo(f"removed {removed} expired codes")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
