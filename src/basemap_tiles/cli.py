"""
Command line interface

``basemap-tiles`` command group: overzoom, statistics, subdivide, convert
and serve.
"""

import json
from dataclasses import replace
from pathlib import Path

import click

from . import __version__
from .addressing import MAX_ZOOM, parse_bounds
from .archive import MBTilesArchive
from .exceptions import TileError
from .monitoring import MetricsCollector
from .overzoom import overzoom as run_overzoom
from .tools import calculate_statistics, convert_directory, subdivide
from .utils import Config, configure_logging


def _bounds_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_bounds(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _load_config(config_file) -> Config:
    try:
        config = Config.load(config_file)
    except (OSError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}")
    _apply_logging(config)
    return config


def _apply_logging(config: Config) -> None:
    """Configure logging from ``config.logging``; command line flags win."""
    ctx = click.get_current_context(silent=True)
    flags = (ctx.find_root().obj if ctx else None) or {}
    level = flags.get("log_level") or config.logging.level
    json_logs = flags.get("json_logs")
    configure_logging(level, config.logging.json_logs if json_logs is None else json_logs)


@click.group()
@click.version_option(__version__, prog_name="basemap-tiles")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level [default: logging.level from the configuration, INFO].",
)
@click.option(
    "--json-logs/--console-logs",
    default=None,
    help="Log format [default: logging.json_logs from the configuration].",
)
@click.pass_context
def main(ctx, log_level, json_logs):
    """
    Tools for MBTiles vector tile archives.
    """
    ctx.obj = {"log_level": log_level, "json_logs": json_logs}
    _load_config(None)


@main.command(name="overzoom")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--target-zoom",
    "-t",
    type=click.IntRange(0, MAX_ZOOM),
    required=True,
    help="Deepest zoom to synthesize; every level above it down from maxzoom+1 is filled.",
)
@click.option(
    "--bounds",
    callback=_bounds_option,
    help="Restrict synthesis to WEST,SOUTH,EAST,NORTH (degrees).",
)
@click.option("--buffer", type=click.IntRange(min=0), help="Clip margin in output tile units.")
@click.option("--workers", type=click.IntRange(min=1), help="Worker threads.")
@click.option("--row-origin", type=click.Choice(["tms", "xyz"]), help="Row convention of both archives.")
@click.option("--no-copy-source", is_flag=True, help="Do not copy the source tiles into the output.")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON configuration file.",
)
@click.option("--yes", "-y", is_flag=True, help="Overwrite an existing output without asking.")
@click.pass_context
def overzoom_command(
    ctx, input_path, output_path, target_zoom, bounds, buffer, workers, row_origin,
    no_copy_source, config_file, yes
):
    """
    Fill zoom levels deeper than INPUT's maxzoom into OUTPUT.
    """
    config = _load_config(config_file)
    overrides = {}
    if buffer is not None:
        overrides["buffer"] = buffer
    if workers is not None:
        overrides["max_workers"] = workers
    if row_origin is not None:
        overrides["row_origin"] = row_origin
    if no_copy_source:
        overrides["copy_source_tiles"] = False
    settings = replace(config.overzoom, **overrides)

    if output_path.resolve() == input_path.resolve():
        raise click.UsageError("OUTPUT must differ from INPUT")

    with MBTilesArchive(input_path, mode="r", row_origin=settings.row_origin) as source:
        try:
            max_zoom = source.get_metadata().require_max_zoom()
        except TileError as e:
            raise click.ClickException(str(e))

        levels = list(range(max_zoom + 1, target_zoom + 1))
        if not levels:
            raise click.UsageError(
                f"--target-zoom must be deeper than the input maxzoom ({max_zoom})"
            )

        if output_path.exists():
            if not yes:
                click.confirm(f"{output_path} exists. Overwrite?", abort=True)
            output_path.unlink()

        metrics = MetricsCollector(
            enable_prometheus=config.metrics.enable_prometheus,
            prometheus_gateway=config.metrics.pushgateway,
            job_name=config.metrics.job_name
        )
        with MBTilesArchive(
            output_path,
            mode="w",
            row_origin=settings.row_origin,
            commit_interval=settings.commit_interval
        ) as destination:
            try:
                summary = run_overzoom(
                    source, destination, levels, bounds, config=settings, metrics=metrics
                )
            except TileError as e:
                raise click.ClickException(str(e))

    click.echo(json.dumps(summary.to_dict(), indent=2))
    if not summary.success:
        ctx.exit(1)


@main.command(name="statistics")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--row-origin", type=click.Choice(["tms", "xyz"]), default="tms", show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of tables.")
def statistics_command(input_path, row_origin, as_json):
    """
    Print tile size statistics of INPUT.
    """
    stats = calculate_statistics(input_path, row_origin=row_origin)
    if as_json:
        click.echo(json.dumps(stats.to_dict(), indent=2, default=float))
    else:
        click.echo(stats.format())


@main.command(name="subdivide")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--row-origin", type=click.Choice(["tms", "xyz"]), default="tms", show_default=True)
def subdivide_command(config_path, input_path, output_dir, row_origin):
    """
    Split INPUT into one archive per output listed in CONFIG_PATH.
    """
    try:
        result = subdivide(config_path, input_path, output_dir, row_origin=row_origin)
    except (ValueError, TileError) as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command(name="convert")
@click.argument("input_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("output_path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--row-origin", type=click.Choice(["tms", "xyz"]), default="tms", show_default=True)
def convert_command(input_dir, output_path, row_origin):
    """
    Pack a z/x/y.pbf directory INPUT_DIR into the MBTiles archive OUTPUT_PATH.
    """
    try:
        result = convert_directory(input_dir, output_path, row_origin=row_origin)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(result.to_dict(), indent=2))


@main.command(name="serve")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--host", help="Bind address.")
@click.option("--port", type=click.IntRange(1, 65535), help="Bind port.")
@click.option("--max-overzoom", type=click.IntRange(0, MAX_ZOOM), help="Deepest zoom served.")
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON configuration file.",
)
def serve_command(input_path, host, port, max_overzoom, config_file):
    """
    Serve INPUT over HTTP, synthesizing tiles past its maxzoom.
    """
    import uvicorn

    from .server import create_app

    config = _load_config(config_file)
    overrides = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if max_overzoom is not None:
        overrides["max_overzoom"] = max_overzoom
    config = replace(config, server=replace(config.server, **overrides))

    app = create_app(input_path, config)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level="info")


if __name__ == "__main__":
    main()
