"""Click CLI entry point for atlascache."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from atlascache import __version__
from atlascache.codec import CACHE_MAGIC, CACHE_VERSION, read_cache_header
from atlascache.config import LightmapSettings, load_settings
from atlascache.errors import AtlasCacheError, TruncatedCacheError
from atlascache.exporter import export_glb
from atlascache.hashing import compute_geometry_hash, format_hash
from atlascache.importer import GltfImporter
from atlascache.mesh import load_mesh
from atlascache.packer import XatlasPacker
from atlascache.warning_policy import describe_codes, parse_code_list


def _build_settings(
    config: Path | None,
    read_cache: bool,
    write_cache: bool,
    warn_as_error: str | None,
    suppress_warning: str | None,
) -> LightmapSettings:
    """Merge the settings file (if any) with command-line overrides."""
    try:
        settings = load_settings(config) if config is not None else LightmapSettings()
    except AtlasCacheError as e:
        raise click.ClickException(str(e)) from e

    updates: dict = {"generate_lightmap_uv": True}
    if not read_cache:
        updates["read_cache"] = False
    if not write_cache:
        updates["write_cache"] = False
    try:
        if warn_as_error is not None:
            updates["warn_as_error"] = sorted(parse_code_list(warn_as_error))
        if suppress_warning is not None:
            updates["suppress_warnings"] = sorted(parse_code_list(suppress_warning))
    except ValueError as e:
        raise click.ClickException(str(e)) from e
    return settings.model_copy(update=updates)


@click.group()
@click.version_option(version=__version__, prog_name="atlascache")
@click.option("-v", "--verbose", count=True, help="Increase log output (-v info, -vv debug).")
def main(verbose: int = 0) -> None:
    """atlascache: lightmap UV atlases with a content-addressed disk cache."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument("mesh_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML lightmap settings file.",
)
@click.option(
    "--no-read-cache",
    "no_read_cache",
    is_flag=True,
    default=False,
    help="Ignore any existing cache file and regenerate.",
)
@click.option(
    "--no-write-cache",
    "no_write_cache",
    is_flag=True,
    default=False,
    help="Do not write a cache file.",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the final geometry as GLB with lightmap UVs in TEXCOORD_1.",
)
@click.option(
    "--warn-as-error",
    "warn_as_error",
    type=str,
    default=None,
    help="Comma-separated W-codes to treat as errors (e.g. W01,W04).",
)
@click.option(
    "--suppress-warning",
    "suppress_warning",
    type=str,
    default=None,
    help="Comma-separated W-codes to suppress (e.g. W06).",
)
def bake(
    mesh_file: Path,
    config: Path | None = None,
    no_read_cache: bool = False,
    no_write_cache: bool = False,
    output: Path | None = None,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Generate (or load cached) lightmap UVs for a .gltf/.glb mesh."""
    settings = _build_settings(
        config, not no_read_cache, not no_write_cache, warn_as_error, suppress_warning
    )

    try:
        mesh = load_mesh(mesh_file, settings=settings, packer=XatlasPacker(settings.packer))
        if output is not None:
            export_glb(mesh, output)
    except AtlasCacheError as e:
        raise click.ClickException(str(e))

    outcome = mesh.lightmap_outcome
    if outcome is None:
        raise click.ClickException(f"{mesh_file}: no lightmap result was produced")
    click.echo(
        f"{outcome.resolution.value}: {mesh_file.name} "
        f"atlas={outcome.width}x{outcome.height} "
        f"vertices={len(mesh.vertices)} indices={len(mesh.indices)} "
        f"submeshes={len(mesh.submeshes)} hash={format_hash(outcome.geometry_hash)}"
    )
    if outcome.cache_written:
        click.echo(f"Wrote cache: {outcome.cache_path}")
    if output is not None:
        click.echo(f"Exported: {output}")


@main.command("hash")
@click.argument("mesh_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def hash_command(mesh_file: Path) -> None:
    """Print the pre-atlas geometry hash of a .gltf/.glb mesh."""
    try:
        imported = GltfImporter().import_file(mesh_file)
    except AtlasCacheError as e:
        raise click.ClickException(str(e))
    click.echo(format_hash(compute_geometry_hash(imported.snapshot)))


@main.command()
@click.argument("cache_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Inspection output format.",
)
def inspect(cache_file: Path, output_format: str = "text") -> None:
    """Show the header of a lightmap cache file."""
    try:
        header = read_cache_header(cache_file.read_bytes())
    except OSError as e:
        raise click.ClickException(f"Cannot read {cache_file}: {e}") from e
    except TruncatedCacheError as e:
        raise click.ClickException(str(e))

    payload = header.as_dict()
    payload["magic_ok"] = header.magic == CACHE_MAGIC
    payload["version_ok"] = header.version == CACHE_VERSION

    if output_format == "json":
        click.echo(json.dumps(payload, indent=2))
    else:
        for key, value in payload.items():
            click.echo(f"{key}: {value}")


@main.command()
def codes() -> None:
    """List the warning codes accepted by --warn-as-error and --suppress-warning."""
    click.echo(describe_codes())
