#!/usr/bin/env python3
"""
Barrio Survey Maps Pipeline with Click CLI

This script drives the survey workflow end to end: spreadsheet upload into the
survey store, the store-side batch migration to the normalized table, and
export of weighted barrio heatmap features.

Usage:
    survey-pipeline [OPTIONS] COMMAND [ARGS]

    # Normalize and upload a survey workbook:
    survey-pipeline upload "data/encuesta.xlsx"
    survey-pipeline upload "data/encuesta.xlsx" --dry-run   # Only report what was parsed

    # Batch migration:
    survey-pipeline migrate             # Clear the normalized table and migrate everything
    survey-pipeline migrate --resume    # Continue from the store-reported offset
    survey-pipeline progress
    survey-pipeline reset-migration

    # Heatmap export:
    survey-pipeline heatmap --category SALUD --output data/heatmap_salud.geojson

    # Verbose logging:
    survey-pipeline --verbose migrate   # Enable DEBUG level logging
"""

import json
import os
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click
from loguru import logger
from survey_processing.batch_uploader import BatchUploader
from survey_processing.coordinates import BoundingBox
from survey_processing.data_utils import read_raw_grid
from survey_processing.geo_mesh import BarrioMesh
from survey_processing.heatmap import HeatmapFeatureBuilder, summarize_stats, top_barrios
from survey_processing.record_builder import MalformedGridError, process_grid, summarize_records

from .config_loader import Config
from .migration import (
    MigrationOrchestrator,
    MigrationState,
    MigrationStatus,
    orchestrator_from_config,
)
from .repositories.survey import SurveyStore, get_survey_store


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    # Remove default logger
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    elif verbose:
        log_level = "DEBUG"
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_level = "INFO"
        log_format = (
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")

    logger.success("📋 Logging system initialized")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """
    Handle critical errors with optional trace logging.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    enable_trace = os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE"

    if enable_trace:
        logger.trace("💥 TRACE MODE: Analyzing critical error with full context")
        logger.trace(f"Error context: {context}")
        logger.trace(f"Error type: {type(error).__name__}")
        logger.trace(f"Error args: {error.args}")
        logger.opt(exception=error).trace("Full traceback:")

    logger.critical(f"💥 CRITICAL ERROR: {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")

    if not enable_trace:
        logger.info("💡 For detailed debugging, run with --trace flag")


def _open_store(ctx: click.Context) -> SurveyStore:
    try:
        return get_survey_store(ctx.obj)
    except Exception as e:
        handle_critical_error(e, "Connecting to the survey store")
        raise click.exceptions.Exit(1) from e


def _log_migration_status(status: MigrationStatus) -> None:
    logger.debug(
        f"   🔄 {status.state.value}: {status.percentage:.1f}% "
        f"({status.batches_completed} batches)"
    )


@contextmanager
def _stop_on_interrupt(orchestrator: MigrationOrchestrator):
    """Turn Ctrl-C into a cooperative stop so the in-flight batch can finish."""

    def _request_stop(signum, frame):
        logger.warning("⏹️ Interrupt received; stopping after the current batch")
        orchestrator.stop()

    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, _request_stop)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config.yaml (default: SURVEY_CONFIG_PATH, ./config.yaml, packaged defaults)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option(
    "--trace", is_flag=True, help="Enable TRACE level logging for maximum debugging detail"
)
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, config_file: Optional[str], verbose: bool, trace: bool, log_file: Optional[str]):
    """
    Barrio Survey Maps Pipeline

    Normalize survey spreadsheets, migrate them in batches inside the survey
    store and export weighted barrio heatmaps.

    \b
    Examples:
      survey-pipeline upload "data/encuesta.xlsx" --dry-run    # Parse only
      survey-pipeline migrate --resume                         # Continue a stopped migration
      survey-pipeline heatmap --output heatmap.geojson         # All categories
      survey-pipeline --log-file "pipeline.log" migrate        # Also save logs to file
    """
    setup_logging(verbose=verbose, enable_trace=trace)

    if log_file:
        log_level = "TRACE" if trace else ("DEBUG" if verbose else "INFO")
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {log_file}")

    try:
        config = Config(config_file)
    except Exception as e:
        logger.critical(f"Configuration error: {e}")
        logger.info("💡 Make sure config.yaml exists and is valid")
        ctx.exit(1)
        return

    logger.info(f"🗺️ {config.get('project_name')}")
    config.print_config_summary()
    ctx.obj = config


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--sheet", default="0", help="Sheet name or index to read from a workbook")
@click.option("--dry-run", is_flag=True, help="Parse and summarize without uploading")
@click.pass_context
def upload(ctx, file_path: str, sheet: str, dry_run: bool):
    """Normalize a survey spreadsheet and upload it in chunks."""
    config: Config = ctx.obj
    sheet_name = int(sheet) if sheet.isdigit() else sheet

    try:
        records = process_grid(read_raw_grid(file_path, sheet_name=sheet_name))
    except MalformedGridError as e:
        logger.error(f"❌ Malformed survey file: {e}")
        ctx.exit(1)
        return
    except Exception as e:
        handle_critical_error(e, f"Reading {file_path}")
        ctx.exit(1)
        return

    summary = summarize_records(records)
    logger.info("📊 Parsed records:")
    for key, value in summary.items():
        logger.info(f"   {key}: {value}")

    if dry_run:
        logger.info("🔍 DRY RUN MODE - nothing was uploaded")
        return

    store = _open_store(ctx)
    uploader = BatchUploader(store, chunk_size=int(config.get("upload.chunk_size")))
    stats = uploader.upload(records, on_progress=lambda pct: logger.info(f"   📈 {pct:.0f}%"))

    logger.info(f"📋 Upload summary: {json.dumps(stats.to_dict(), ensure_ascii=False)}")
    if stats.failed:
        logger.error(f"❌ {stats.failed:,} of {stats.total_records:,} records were not uploaded")
        ctx.exit(1)


@cli.command()
@click.option("--resume", is_flag=True, help="Continue from the store offset without clearing")
@click.pass_context
def migrate(ctx, resume: bool):
    """Run the batch migration to the normalized table."""
    store = _open_store(ctx)
    orchestrator = orchestrator_from_config(store, ctx.obj, on_update=_log_migration_status)

    with _stop_on_interrupt(orchestrator):
        status = orchestrator.resume() if resume else orchestrator.start()

    logger.info(f"📋 {status.message}")
    logger.info(f"   Batches completed: {status.batches_completed}")
    if status.state is MigrationState.IDLE:
        logger.info("💡 Run 'survey-pipeline migrate --resume' to continue from the last offset")
        ctx.exit(1)
    if status.state is MigrationState.FAILED:
        logger.error(f"❌ Migration failed: {status.error}")
        logger.info("💡 Run 'survey-pipeline migrate --resume' to continue from the last offset")
        ctx.exit(1)


@cli.command("reset-migration")
@click.pass_context
def reset_migration(ctx):
    """Clear the normalized table."""
    store = _open_store(ctx)
    status = orchestrator_from_config(store, ctx.obj).reset()
    if status.state is MigrationState.FAILED:
        ctx.exit(1)


@cli.command()
@click.pass_context
def progress(ctx):
    """Show the store-reported migration progress."""
    store = _open_store(ctx)
    try:
        current = store.get_migration_progress()
    except Exception as e:
        handle_critical_error(e, "Reading migration progress")
        ctx.exit(1)
        return

    logger.info("📊 Migration progress:")
    logger.info(f"   Persons: {current.processed_persons:,}/{current.total_persons_to_process:,}")
    logger.info(f"   Progress: {current.progress_percentage:.1f}%")
    logger.info(f"   Next offset: {current.next_offset:,}")
    logger.info(f"   Remaining batches: {current.estimated_remaining_batches:,}")
    click.echo(
        json.dumps(
            {
                "total_persons_to_process": current.total_persons_to_process,
                "processed_persons": current.processed_persons,
                "progress_percentage": current.progress_percentage,
                "next_offset": current.next_offset,
                "estimated_remaining_batches": current.estimated_remaining_batches,
            }
        )
    )


@cli.command()
@click.option("--category", default=None, help="Only count matches in this response category")
@click.option(
    "--mesh",
    "mesh_path",
    type=click.Path(dir_okay=False),
    help="Barrio polygon GeoJSON (default: input_files.barrio_mesh)",
)
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False))
@click.pass_context
def heatmap(ctx, category: Optional[str], mesh_path: Optional[str], output: str):
    """Export weighted heatmap features as GeoJSON."""
    config: Config = ctx.obj

    mesh = None
    resolved_mesh = Path(mesh_path) if mesh_path else config.get_input_path("barrio_mesh")
    if resolved_mesh.exists():
        try:
            mesh = BarrioMesh.from_file(resolved_mesh)
        except Exception as e:
            handle_critical_error(e, f"Loading barrio mesh {resolved_mesh}")
            ctx.exit(1)
            return
    elif mesh_path:
        logger.error(f"❌ Barrio mesh not found: {resolved_mesh}")
        ctx.exit(1)
        return
    else:
        logger.warning(f"⚠️ Barrio mesh {resolved_mesh} not found; exporting points only")

    store = _open_store(ctx)
    try:
        stats = store.get_aggregate_stats(category)
    except Exception as e:
        handle_critical_error(e, "Loading barrio statistics")
        ctx.exit(1)
        return

    builder = HeatmapFeatureBuilder(mesh, BoundingBox.from_dict(config.get_bounding_box()))
    collection = builder.build_feature_collection(stats)

    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(collection, f, separators=(",", ":"), ensure_ascii=False)
    logger.success(f"✅ Wrote {len(collection['features'])} features to {output_path}")

    totals = summarize_stats(stats)
    logger.info(
        f"📊 {totals['total_barrios']} barrios, {totals['total_encuestas']:,.0f} surveys, "
        f"{totals['total_coincidencias']:,.0f} matches ({totals['porcentaje_general']:.1f}%)"
    )
    for rank, stat in enumerate(top_barrios(stats, int(config.get("heatmap.top_barrios"))), start=1):
        logger.info(f"   {rank}. {stat.barrio} ({stat.localidad}): {stat.matches_count:,.0f} matches")


@cli.command()
@click.pass_context
def categories(ctx):
    """List the response categories available in the store."""
    store = _open_store(ctx)
    try:
        names = store.get_available_categories()
    except Exception as e:
        handle_critical_error(e, "Loading categories")
        ctx.exit(1)
        return

    logger.info(f"🏷️ {len(names)} categories available")
    for name in names:
        click.echo(name)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
