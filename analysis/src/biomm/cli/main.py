"""
Main CLI entry point for BioMM.

Provides subcommands:
  - biomm run: Full two-stage pipeline with metrics
  - biomm stage1: Stage-2 data reconstruction only
  - biomm config validate: Validate a configuration file
"""

import click

from biomm import __version__
from biomm.config.validation import ConfigurationError
from biomm.data.splits import ResamplingError
from biomm.features.selection import NoFeaturesRetainedError
from biomm.models.registry import ModelFitError

FATAL_ERRORS = (ConfigurationError, ResamplingError, NoFeaturesRetainedError, ModelFitError)


def _input_options(func):
    """Options shared by the commands that read data."""
    options = [
        click.option(
            "--config",
            "-c",
            type=click.Path(exists=True),
            help="Path to YAML configuration file",
        ),
        click.option(
            "--train",
            "train_file",
            type=click.Path(exists=True),
            required=True,
            help="Training table: samples x (label + features), first column is the sample id",
        ),
        click.option(
            "--annotation",
            "annotation_file",
            type=click.Path(exists=True),
            required=True,
            help="Feature annotation or feature -> group relation",
        ),
        click.option(
            "--test",
            "test_file",
            type=click.Path(exists=True),
            default=None,
            help="Independent test table (label column optional)",
        ),
        click.option(
            "--pathways",
            "pathway_file",
            type=click.Path(exists=True),
            default=None,
            help="gene -> pathway table for pathway stratification",
        ),
        click.option(
            "--label-col",
            default="label",
            show_default=True,
            help="Outcome column name",
        ),
        click.option(
            "--outdir",
            type=click.Path(),
            default="biomm_results",
            show_default=True,
            help="Output directory",
        ),
        click.option(
            "--override",
            multiple=True,
            help="Override config values (format: key=value or nested.key=value)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="biomm")
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv)",
)
@click.pass_context
def cli(ctx, verbose):
    """
    BioMM: biologically stratified two-stage prediction for omics data.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command("run")
@_input_options
@click.pass_context
def run(ctx, config, override, **kwargs):
    """Run stage 1, stage-2 selection and the stage-2 model."""
    from biomm.cli.run_pipeline import run_biomm_command

    try:
        out = run_biomm_command(
            config_file=config,
            overrides=list(override),
            verbose=ctx.obj.get("verbose", 0),
            **kwargs,
        )
    except FATAL_ERRORS as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e
    click.echo(f"Results written to: {out}")


@cli.command("stage1")
@_input_options
@click.pass_context
def stage1(ctx, config, override, **kwargs):
    """Reconstruct stage-2 data only (exploration mode)."""
    from biomm.cli.run_pipeline import run_stage1_command

    try:
        out = run_stage1_command(
            config_file=config,
            overrides=list(override),
            verbose=ctx.obj.get("verbose", 0),
            **kwargs,
        )
    except FATAL_ERRORS as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e
    click.echo(f"Stage-2 data written to: {out}")


@cli.group("config")
def config_group():
    """Configuration management tools (validate)."""
    pass


@config_group.command("validate")
@click.argument("config_file", type=click.Path(exists=True))
@click.option(
    "--override",
    multiple=True,
    help="Override config values before validating",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Treat warnings as errors",
)
@click.pass_context
def config_validate(ctx, config_file, override, strict):
    """Validate configuration file and report issues."""
    from pathlib import Path

    from biomm.cli.config_tools import run_config_validate

    run_config_validate(
        config_file=Path(config_file),
        overrides=list(override),
        strict=strict,
        verbose=ctx.obj.get("verbose", 0),
    )


def main():
    """Entry point for console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
