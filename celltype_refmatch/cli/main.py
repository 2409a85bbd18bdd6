"""Command-line interface for CellType-RefMatch.

Provides CLI commands for marker derivation and reference-based annotation.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click

from .. import __version__
from ..errors import RefMatchError


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("celltype_refmatch")


def _load_reference(
    reference_path: str,
    labels_path: Optional[str],
    label_column: Optional[str],
    samples_as_rows: bool,
    logger: logging.Logger,
) -> Tuple[Any, Any]:
    """Return (reference, labels) in a form ``coerce_reference`` accepts."""
    from celltype_refmatch.io import load_labels, load_matrix

    if labels_path:
        reference = load_matrix(reference_path, samples_as_rows=samples_as_rows)
        labels = load_labels(labels_path, column=label_column)
        logger.info("Loaded %d reference labels from %s", len(labels), labels_path)
        return reference, labels

    if Path(reference_path).suffix == ".h5ad" and label_column:
        import anndata as ad

        adata = ad.read_h5ad(reference_path)
        logger.info("Loaded reference AnnData: %d cells, %d features", adata.n_obs, adata.n_vars)
        return adata, label_column

    raise click.UsageError(
        "Reference labels are required: pass --labels, or --label-column with an .h5ad reference"
    )


@click.group()
@click.version_option(version=__version__, prog_name="celltype-refmatch")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """CellType-RefMatch: reference-based cell-type annotation.

    Labels every query cell by quantile Spearman correlation against a
    labelled reference, fine-tunes close calls on pairwise markers and
    prunes low-confidence assignments.

    Examples:

        # Derive pairwise markers from a reference
        celltype-refmatch markers -r ref.csv -l ref_labels.csv -o markers.json

        # Annotate a query
        celltype-refmatch annotate -r ref.csv -l ref_labels.csv -q query.csv -o out/
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--reference", "-r", "reference_path", required=True, type=click.Path(exists=True),
              help="Reference matrix (.csv/.tsv features x samples, or .h5ad)")
@click.option("--labels", "-l", "labels_path", type=click.Path(exists=True),
              help="Reference label table (sample id, label)")
@click.option("--label-column", default=None, help="Label column in the table or AnnData obs")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output marker map (.json or .yaml)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Configuration file (YAML)")
@click.option("--de-method", type=click.Choice(["classic", "wilcoxon", "t-test"]), default=None,
              help="Pairwise differential test")
@click.option("--de-n", type=int, default=None, help="Markers kept per label pair")
@click.option("--n-workers", type=int, default=None, help="Threads for label pairs")
@click.option("--samples-as-rows", is_flag=True, help="Delimited matrices are samples x features")
@click.pass_context
def markers(
    ctx: click.Context,
    reference_path: str,
    labels_path: Optional[str],
    label_column: Optional[str],
    output_path: str,
    config: Optional[str],
    de_method: Optional[str],
    de_n: Optional[int],
    n_workers: Optional[int],
    samples_as_rows: bool,
) -> None:
    """Derive pairwise markers from a labelled reference."""
    logger = ctx.obj["logger"]
    logger.info("Deriving markers from: %s", reference_path)

    from celltype_refmatch.config import RefMatchConfig
    from celltype_refmatch.core.markers import resolve_markers, write_marker_map

    try:
        cfg = RefMatchConfig.from_yaml(Path(config)) if config else RefMatchConfig()
        if de_method is not None:
            cfg.markers.de_method = de_method
        if de_n is not None:
            cfg.markers.de_n = de_n
        if n_workers is not None:
            cfg.markers.n_workers = n_workers
        cfg.validate()
        reference, labels = _load_reference(
            reference_path, labels_path, label_column, samples_as_rows, logger
        )
        marker_map = resolve_markers(reference, labels, config=cfg.markers, logger=logger)
    except (RefMatchError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    output_file = write_marker_map(marker_map, output_path)
    click.echo(
        f"Derived markers for {len(marker_map.labels)} labels "
        f"({len(marker_map.union())} unique features)"
    )
    click.echo(f"Output saved to: {output_file}")


@cli.command()
@click.option("--reference", "-r", "reference_path", required=True, type=click.Path(exists=True),
              help="Reference matrix (.csv/.tsv features x samples, or .h5ad)")
@click.option("--labels", "-l", "labels_path", type=click.Path(exists=True),
              help="Reference label table (sample id, label)")
@click.option("--label-column", default=None, help="Label column in the table or AnnData obs")
@click.option("--query", "-q", "query_path", required=True, type=click.Path(exists=True),
              help="Query matrix (.csv/.tsv features x samples, or .h5ad)")
@click.option("--marker-map", "-m", type=click.Path(exists=True),
              help="Marker specification (JSON/YAML); derived when omitted")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Configuration file (YAML)")
@click.option("--quantile", type=float, default=None, help="Correlation quantile per label")
@click.option("--tolerance", type=float, default=None, help="Fine-tuning tolerance")
@click.option("--fine-tune/--no-fine-tune", default=None, help="Enable fine-tuning")
@click.option("--nmads", type=float, default=None, help="Pruning threshold in MADs")
@click.option("--per-label/--global-prune", default=None, help="Prune within each label")
@click.option("--n-workers", type=int, default=None, help="Parallel workers for query samples")
@click.option("--accelerate", is_flag=True, help="Build KD-trees for first-pass scoring")
@click.option("--layer", default=None, help="AnnData layer of the query")
@click.option("--samples-as-rows", is_flag=True, help="Delimited matrices are samples x features")
@click.pass_context
def annotate(
    ctx: click.Context,
    reference_path: str,
    labels_path: Optional[str],
    label_column: Optional[str],
    query_path: str,
    marker_map: Optional[str],
    output_path: str,
    config: Optional[str],
    quantile: Optional[float],
    tolerance: Optional[float],
    fine_tune: Optional[bool],
    nmads: Optional[float],
    per_label: Optional[bool],
    n_workers: Optional[int],
    accelerate: bool,
    layer: Optional[str],
    samples_as_rows: bool,
) -> None:
    """Annotate query cells against a labelled reference.

    Writes predictions.csv, scores.csv, first_scores.csv and summary.csv to
    the output directory, along with a run log, the effective
    configuration and a one-line run summary appended to runs.jsonl.
    """
    from celltype_refmatch.config import RefMatchConfig
    from celltype_refmatch.core.classification import RefMatchEngine
    from celltype_refmatch.core.markers import load_marker_spec
    from celltype_refmatch.io import (
        RUN_RECORD_FILENAME,
        build_run_record,
        ensure_output_dir,
        get_logger,
        load_matrix,
        log_json,
        log_yaml,
    )

    out_dir = ensure_output_dir(output_path)
    logger, log_path = get_logger("celltype_refmatch.annotate", out_dir / "annotate.log")
    ctx.obj["logger"].info("Logging to %s", log_path)

    try:
        cfg = RefMatchConfig.from_yaml(Path(config)) if config else RefMatchConfig()
        if quantile is not None:
            cfg.scoring.quantile = quantile
        if tolerance is not None:
            cfg.fine_tune.tolerance = tolerance
        if fine_tune is not None:
            cfg.fine_tune.enabled = fine_tune
        if nmads is not None:
            cfg.prune.nmads = nmads
        if per_label is not None:
            cfg.prune.per_label = per_label
        if n_workers is not None:
            cfg.parallel.n_workers = n_workers
        if accelerate:
            cfg.acceleration.enabled = True
        cfg.validate()
        log_yaml(out_dir / "config_effective.yaml", cfg.to_dict())

        reference, labels = _load_reference(
            reference_path, labels_path, label_column, samples_as_rows, logger
        )
        if Path(query_path).suffix == ".h5ad":
            import anndata as ad

            query = ad.read_h5ad(query_path)
        else:
            query = load_matrix(query_path, samples_as_rows=samples_as_rows)
        marker_spec = load_marker_spec(marker_map) if marker_map else None

        engine = RefMatchEngine(cfg, logger=logger)
        query_features = query.var_names if hasattr(query, "var_names") else query.index
        artifact = engine.train(
            reference,
            labels,
            marker_spec=marker_spec,
            restrict=None if marker_spec is not None else query_features,
        )
        result = engine.run(query, artifact, output_dir=out_dir, layer=layer)
    except (RefMatchError, FileNotFoundError) as e:
        logger.error("%s", e)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    log_json(
        out_dir / RUN_RECORD_FILENAME,
        build_run_record("annotate", result, cfg.to_dict(), log_path=log_path),
    )
    n_pruned = int(result.pruned.sum())
    click.echo(
        f"Annotation complete: {len(result.records)} samples, "
        f"{artifact.n_labels} labels, {n_pruned} pruned"
    )
    click.echo(f"Output saved to: {out_dir}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
