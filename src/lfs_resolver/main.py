"""CLI entrypoint for lfs-resolver."""

import logging
from pathlib import Path

import rich_click as click

from lfs_resolver import __version__
from lfs_resolver.controllers import PointerCommand, ResolverCliController, RunCommand
from lfs_resolver.errors import ConfigurationError, ResolverError

click.rich_click.USE_MARKDOWN = True
RESOLVER_CONTROLLER = ResolverCliController()


@click.group()
@click.version_option(version=__version__, prog_name="lfs-resolver")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    show_default=True,
    help="Logging verbosity.",
)
def lfs_resolver(log_level: str) -> None:
    """Resolve Git LFS image pointers and generate print/preview derivatives."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@lfs_resolver.command("run")
@click.option(
    "--source-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the images/ folder. Defaults to LFS_RESOLVER_SOURCE_DIR.",
)
@click.option(
    "--modified-list",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="File listing modified images. Defaults to LFS_RESOLVER_MODIFIED_IMAGES.",
)
@click.option("--build-version", default=None, help="Version segment for output keys.")
@click.option(
    "--previous-build-version",
    default=None,
    help="Version to copy unchanged derivatives from. Empty string forces a cold build.",
)
@click.option(
    "--batch-size",
    type=click.IntRange(min=1, max=1000),
    default=None,
    help="Pointers resolved per LFS batch request.",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Max in-flight compute invocations per batch.",
)
def run(  # noqa: PLR0913
    source_dir: Path | None,
    modified_list: Path | None,
    build_version: str | None,
    previous_build_version: str | None,
    batch_size: int | None,
    concurrency: int | None,
) -> None:
    """Copy forward unchanged derivatives and regenerate the rest."""

    try:
        lines = RESOLVER_CONTROLLER.run(
            RunCommand(
                source_dir=source_dir,
                modified_list=modified_list,
                build_version=build_version,
                previous_build_version=previous_build_version,
                batch_size=batch_size,
                concurrency=concurrency,
            ),
        )
    except ConfigurationError as error:
        raise click.UsageError(str(error)) from error
    except ResolverError as error:
        raise click.ClickException(f"Build failed: {error}") from error
    _emit_lines(lines)


@lfs_resolver.command("pointer")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--source-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Root used to name the files in the output.",
)
def pointer(paths: tuple[Path, ...], source_dir: Path | None) -> None:
    """Parse LFS pointer files and print their content id and size."""

    try:
        lines = RESOLVER_CONTROLLER.inspect_pointers(
            PointerCommand(paths=paths, source_dir=source_dir),
        )
    except ResolverError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    lfs_resolver()
