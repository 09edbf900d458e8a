import json
import logging
import os
import typer
import yaml
from scan_engine.checks.cis_check import CISCheck
from scan_engine.checks.container_check import ContainerCheck
from scan_engine.config import ScanSettings, load_settings
from scan_engine.core import ScanEngine
from scan_engine.errors import ScanEngineError
from scan_engine.models import OSInfo, ScanTarget
from scan_engine.targets import LocalTarget

app = typer.Typer()

def load_checks(path: str):
    """Reads a rule document with `cis_checks` and `container_checks` lists (YAML or JSON)."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    cis_checks = [CISCheck.model_validate(c) for c in data.get("cis_checks", [])]
    container_checks = [ContainerCheck.model_validate(c) for c in data.get("container_checks", [])]
    return cis_checks, container_checks

@app.command()
def scan(
    checks: str = typer.Option(..., "--checks", "-c", help="Rule file with cis_checks / container_checks"),
    rootfs: str = typer.Option("/", "--rootfs", help="Filesystem root to inspect"),
    dockerfile: str = typer.Option(None, "--dockerfile", help="Dockerfile for container checks"),
    image: str = typer.Option(None, "--image", help="Image for container checks"),
    os_id: str = typer.Option(..., "--os-id", help="Detected OS id, e.g. ubuntu"),
    os_version: str = typer.Option("", "--os-version", help="Detected OS version, e.g. 22.04"),
    workers: int = typer.Option(None, "--workers", "-w", help="Checks evaluated in parallel"),
    timeout: float = typer.Option(None, "--timeout", help="Seconds allowed per inspection command"),
    output: str = typer.Option("scan_results.json", "--output", "-o", help="Output file for results"),
):
    """
    Evaluate compliance checks against a target and write the report.
    """
    if not os.path.exists(checks):
        typer.echo(f"Error: Rule file '{checks}' does not exist.")
        raise typer.Exit(code=1)

    settings = load_settings()
    overrides = {}
    if workers is not None:
        overrides["max_workers"] = workers
    if timeout is not None:
        overrides["check_timeout"] = timeout
    settings = ScanSettings(**{**settings.model_dump(), **overrides})
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    cis_checks, container_checks = load_checks(checks)
    target = ScanTarget(
        type="container" if (dockerfile or image) else "os",
        image=image,
        dockerfile=dockerfile,
        rootfs=rootfs,
    )
    os_info = OSInfo(id=os_id, version_id=os_version, name=os_id, pretty_name=f"{os_id} {os_version}".strip())

    engine = ScanEngine(settings)
    try:
        result = engine.run_scan(
            target,
            os_info,
            LocalTarget(target),
            cis_checks=cis_checks,
            container_checks=container_checks,
        )
    except ScanEngineError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(code=1)

    with open(output, "w") as f:
        json.dump(result.model_dump(mode="json"), f, indent=4, default=str)

    typer.echo(f"Scan complete. Found {result.summary.total} findings.")
    if result.errors:
        typer.echo(f"{len(result.errors)} checks could not be evaluated; see 'errors' in the report.")
    typer.echo(f"Results saved to {output}")

if __name__ == "__main__":
    app()
