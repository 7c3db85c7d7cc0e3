"""
Firmware Verifier CLI

Command-line interface for verifying controller firmware against the manifest.
"""

import sys
import logging
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler

from firmware_verifier.config import VerifierConfig
from firmware_verifier.core.actions import (
    check_hex_file,
    verify_device,
    verify_firmware_image,
    verify_params_with_retries,
)
from firmware_verifier.core.messages import result_to_messages
from firmware_verifier.core.results import OperationResult
from firmware_verifier.dumper import AvrdudeDumper
from firmware_verifier.errors import VerifierError
from firmware_verifier.integrity import file_digest
from firmware_verifier.library import (
    fetch_remote_manifest,
    is_remote_newer,
    load_local_manifest,
    save_manifest,
    select_active,
    update_library,
)
from firmware_verifier.manifest import Manifest
from firmware_verifier.platforms import PlatformConfig, get_platform, list_platforms
from firmware_verifier.protocol import SerialTransport

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
)
logger = logging.getLogger("firmware_verifier")
logger.setLevel(logging.INFO)

# Setup Rich console
console = Console()

app = typer.Typer(help="Firmware Verifier - check controller firmware against the manifest")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_result(result: OperationResult, verbose: bool = False) -> None:
    """
    Print the report of a result, then its outcome.

    The outcome is the compact summary by default; verbose mode lists every
    coded error with its remediation hint.
    """
    if result.report:
        console.print(result.report, markup=False, highlight=False)
    if not verbose:
        style = "green" if result.ok else "red"
        console.print(result.to_summary(), style=style, markup=False, highlight=False)
        return

    for warn in result.warnings:
        print_warning(warn)
    for item in result_to_messages(result):
        console.print(item.to_cli_string(verbose=True), style="red", markup=False)
    if result.ok:
        print_success(f"{result.operation} passed")
    else:
        print_error(f"{result.operation} failed")


def result_to_json(result: OperationResult) -> str:
    """Serialize a result plus its coded messages for scripting."""
    doc = result.to_dict()
    doc["messages"] = [item.to_dict() for item in result_to_messages(result)]
    return json.dumps(doc)


def build_config(
    lib_dir: Optional[Path] = None,
    manifest_url: Optional[str] = None,
    debug: bool = False,
) -> VerifierConfig:
    """Environment config with CLI overrides applied."""
    config = VerifierConfig.from_env().with_overrides(lib_dir=lib_dir, manifest_url=manifest_url)
    if debug:
        config = config.with_overrides(debug=True)
    if config.debug:
        logger.setLevel(logging.DEBUG)
    return config


def resolve_platform(name: str) -> PlatformConfig:
    """Convert unknown platform names to typer.BadParameter."""
    try:
        return get_platform(name)
    except KeyError as e:
        raise typer.BadParameter(str(e.args[0]))


def load_active_manifest(config: VerifierConfig, use_remote: bool) -> Manifest:
    """
    Load the local manifest (and the remote one if requested) and select the active one.

    Load failures are reported and leave an unloaded manifest, which every
    verification step rejects.
    """
    local = Manifest()
    remote = Manifest()
    try:
        local = load_local_manifest(config.manifest_path)
    except (VerifierError, OSError) as e:
        print_warning(f"Could not load local manifest: {e}")
    if use_remote:
        try:
            remote = fetch_remote_manifest(config.manifest_url, timeout=config.http_timeout)
        except VerifierError as e:
            print_warning(str(e))
    return select_active(local, remote, use_remote=use_remote)


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command("list-platforms")
def list_platforms_cmd() -> None:
    """List supported controller platforms."""
    table = Table(title="Platforms")
    table.add_column("Platform", style="cyan")
    table.add_column("Serial", style="green")
    table.add_column("Reset on open", style="yellow")
    table.add_column("Dump part", style="magenta")

    for name in list_platforms():
        cfg = get_platform(name)
        table.add_row(
            name,
            f"{cfg.baud_rate} {cfg.bytesize}{cfg.parity}{cfg.stopbits}",
            "Yes" if cfg.reset_on_open else "No",
            cfg.dump_part or "-",
        )
    console.print(table)


@app.command("verify-params")
def verify_params_cmd(
    port: str = typer.Option(..., "--port", "-p", help="Serial port (e.g., /dev/ttyUSB0, COM3)"),
    platform: str = typer.Option("arduino", "--platform", help="Controller platform"),
    remote: bool = typer.Option(False, "--remote", help="Verify against the remote manifest"),
    retries: int = typer.Option(0, "--retries", min=0, help="Extra handshake attempts"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
    debug: bool = typer.Option(False, "--debug", help="Show debug output"),
) -> None:
    """Request the controller's parameters and check its mods."""
    config = build_config(lib_dir=lib_dir, debug=debug)
    platform_cfg = resolve_platform(platform)
    manifest = load_active_manifest(config, remote)

    print_header(f"Verifying parameters on {port}")
    transport = SerialTransport.for_platform(port, platform_cfg)
    result = verify_params_with_retries(transport, platform_cfg, manifest, retries=retries)
    if result.firmware:
        console.print(f"Detected firmware: [cyan]{result.firmware}[/cyan]")
    print_result(result, verbose=config.debug)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("verify-image")
def verify_image_cmd(
    port: str = typer.Option(..., "--port", "-p", help="Serial port"),
    firmware: str = typer.Option(..., "--firmware", "-f", help="Firmware identifier, e.g. stock-1.0"),
    platform: str = typer.Option("arduino", "--platform", help="Controller platform"),
    remote: bool = typer.Option(False, "--remote", help="Verify against the remote manifest"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
    debug: bool = typer.Option(False, "--debug", help="Show debug output"),
) -> None:
    """Compare the controller's program memory with a library image."""
    config = build_config(lib_dir=lib_dir, debug=debug)
    platform_cfg = resolve_platform(platform)
    manifest = load_active_manifest(config, remote)
    dumper = AvrdudeDumper(config.avrdude_path, config.avrdude_conf, platform_cfg, config.dump_path)

    print_header(f"Verifying firmware image on {port}")
    result = verify_firmware_image(firmware, manifest, dumper, port, config)
    print_result(result, verbose=config.debug)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def verify(
    port: str = typer.Option(..., "--port", "-p", help="Serial port"),
    platform: str = typer.Option("arduino", "--platform", help="Controller platform"),
    remote: bool = typer.Option(False, "--remote", help="Verify against the remote manifest"),
    retries: int = typer.Option(2, "--retries", min=0, help="Extra handshake attempts"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
    debug: bool = typer.Option(False, "--debug", help="Show debug output"),
) -> None:
    """Full verification: parameters, then the firmware image."""
    config = build_config(lib_dir=lib_dir, debug=debug)
    platform_cfg = resolve_platform(platform)
    manifest = load_active_manifest(config, remote)

    if not output_json:
        print_header(f"Verifying controller on {port}")
    transport = SerialTransport.for_platform(port, platform_cfg)
    dumper = AvrdudeDumper(config.avrdude_path, config.avrdude_conf, platform_cfg, config.dump_path)
    result = verify_device(transport, platform_cfg, manifest, dumper, config, retries=retries)

    if output_json:
        console.print_json(result_to_json(result))
    else:
        print_result(result, verbose=config.debug)
        if result.ok:
            print_success(f"Controller verified: {result.firmware}")
        else:
            print_error("Controller NOT verified")
    if not result.ok:
        raise typer.Exit(code=1)



@app.command("manifest-show")
def manifest_show(
    remote: bool = typer.Option(False, "--remote", help="Show the remote manifest"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
) -> None:
    """Show the firmware images and mods of a manifest."""
    config = build_config(lib_dir=lib_dir)
    manifest = load_active_manifest(config, remote)
    if not manifest.is_loaded():
        print_error("Manifest is not loaded.")
        raise typer.Exit(code=1)

    print_header(f"Manifest (timestamp {manifest.timestamp})")
    images = Table(title="Firmware Images")
    images.add_column("Name", style="cyan")
    images.add_column("Permitted", style="green")
    images.add_column("SHA-256", style="dim")
    for img in manifest.firmware_images:
        images.add_row(img.name, "Yes" if img.permitted else "No", img.hash)
    console.print(images)

    mods = Table(title="Mods")
    mods.add_column("Name", style="cyan")
    mods.add_column("Permitted", style="green")
    mods.add_column("Values", style="yellow")
    for mod in manifest.mod_specs:
        values = ", ".join(f"{v.name} [{v.min_val}..{v.max_val}]" for v in mod.value_specs)
        mods.add_row(mod.name, "Yes" if mod.permitted else "No", values or "-")
    console.print(mods)


@app.command("manifest-update")
def manifest_update(
    force: bool = typer.Option(False, "--force", help="Save even if the remote copy is not newer"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
    url: Optional[str] = typer.Option(None, "--url", help="Remote manifest URL"),
) -> None:
    """Fetch the remote manifest and save it locally when it is newer."""
    config = build_config(lib_dir=lib_dir, manifest_url=url)
    local = Manifest()
    try:
        local = load_local_manifest(config.manifest_path)
    except (VerifierError, OSError) as e:
        print_warning(f"Could not load local manifest: {e}")

    try:
        remote = fetch_remote_manifest(config.manifest_url, timeout=config.http_timeout)
    except VerifierError as e:
        print_error(str(e))
        raise typer.Exit(code=1)

    if not force and not is_remote_newer(remote, local):
        print_success(f"Local manifest is up to date (timestamp {local.timestamp})")
        return

    try:
        save_manifest(remote, config.manifest_path, config.manifest_backup_path)
    except OSError as e:
        print_error(f"Could not write local manifest: {e}")
        raise typer.Exit(code=1)
    print_success(f"Manifest updated to timestamp {remote.timestamp}")


@app.command("update-lib")
def update_lib(
    remote: bool = typer.Option(False, "--remote", help="Use the remote manifest"),
    lib_dir: Optional[Path] = typer.Option(None, "--lib-dir", help="Library directory"),
) -> None:
    """Verify library images against the manifest, downloading any that don't match."""
    config = build_config(lib_dir=lib_dir)
    manifest = load_active_manifest(config, remote)
    result = update_library(
        manifest, config.lib_dir, limit=config.download_limit, timeout=config.http_timeout
    )
    print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("check-hex")
def check_hex(
    hex_file: Path = typer.Argument(..., help="Intel HEX firmware file"),
    expected_hash: Optional[str] = typer.Option(None, "--hash", help="Expected SHA-256"),
) -> None:
    """Check every record checksum of a .hex file."""
    result = check_hex_file(hex_file, expected_hash)
    if "sha256" in result.hashes:
        console.print(f"SHA-256: {result.hashes['sha256']}")
    print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command("hash")
def hash_cmd(path: Path = typer.Argument(..., help="File to hash")) -> None:
    """Print the SHA-256 of a file, as used in the manifest."""
    try:
        console.print(file_digest(path))
    except OSError as e:
        print_error(str(e))
        raise typer.Exit(code=1)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
