"""modcomm CLI - inspect and exercise a modules tree.

Commands:
    discover - List module descriptors found under a path
    order    - Print the dependency load order
    load     - Discover, order and load modules, then report
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

import click

from . import __version__
from .bootstrap import create_hub
from .config import ConfigError, ConfigLoader
from .errors import CircularDependencyError
from .modules.descriptor import ModuleState

_STATE_COLORS = {
    ModuleState.DISCOVERED: "cyan",
    ModuleState.LOADING: "yellow",
    ModuleState.LOADED: "green",
    ModuleState.FAILED: "red",
    ModuleState.DISABLED: "bright_black",
}


def _build_config(ctx: click.Context):
    """Layer --config file, environment and command-line limits."""
    opts = ctx.obj
    overrides: Dict[str, Any] = {}
    if opts.get("max_depth") is not None:
        overrides["discovery_max_depth"] = opts["max_depth"]
    if opts.get("max_files") is not None:
        overrides["discovery_max_files"] = opts["max_files"]

    paths = [opts["config"]] if opts.get("config") else None
    try:
        return ConfigLoader.load(paths=paths, overrides=overrides).build()
    except ConfigError as e:
        raise click.ClickException(e.message) from e


# ============================================================================
# Commands
# ============================================================================

@click.group()
@click.version_option(version=__version__, prog_name="modcomm")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="YAML/JSON config file")
@click.option("--max-depth", type=int, help="Maximum directory depth to scan")
@click.option("--max-files", type=int, help="Maximum number of files to scan")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config_file: Optional[str], max_depth: Optional[int], max_files: Optional[int], verbose: bool):
    """Module communication toolkit."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_file
    ctx.obj["max_depth"] = max_depth
    ctx.obj["max_files"] = max_files
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command("discover")
@click.argument("path", type=click.Path(file_okay=False))
@click.pass_context
def discover(ctx, path: str):
    """List module descriptors under PATH."""
    hub = create_hub(_build_config(ctx))
    descriptors = hub.manager.discover_modules(path)

    if not descriptors:
        click.echo(f"No modules found under {path}")
        return

    for name, descriptor in descriptors.items():
        click.echo(click.style(name, fg="green", bold=True))
        click.echo(f"  class: {descriptor.class_ref}")
        deps = ", ".join(descriptor.dependencies) or "-"
        click.echo(f"  dependencies: {deps}")

    truncated = hub.manager.discovery.stats.get("truncated")
    if truncated:
        click.echo(click.style(f"Scan truncated ({truncated})", fg="yellow"))


@cli.command("order")
@click.argument("path", type=click.Path(file_okay=False))
@click.pass_context
def order(ctx, path: str):
    """Print the load order of the modules under PATH."""
    hub = create_hub(_build_config(ctx))
    descriptors = hub.manager.discover_modules(path)

    try:
        names = hub.manager.resolve_dependencies(descriptors)
    except CircularDependencyError as e:
        click.echo(click.style(e.message, fg="red"), err=True)
        sys.exit(1)

    for position, name in enumerate(names, start=1):
        click.echo(f"{position}. {name}")


@cli.command("load")
@click.argument("path", type=click.Path(file_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print stats as JSON")
@click.pass_context
def load(ctx, path: str, as_json: bool):
    """Discover, order and load the modules under PATH."""
    hub = create_hub(_build_config(ctx))

    try:
        hub.discover_and_load(path)
    except CircularDependencyError as e:
        click.echo(click.style(e.message, fg="red"), err=True)
        sys.exit(1)

    descriptors = hub.manager.get_descriptors()

    if as_json:
        payload = {
            "modules": {name: d.to_dict() for name, d in descriptors.items()},
            "stats": hub.get_stats(),
        }
        click.echo(json.dumps(payload, indent=2, default=str))
    else:
        for name, descriptor in descriptors.items():
            state = click.style(descriptor.state.value, fg=_STATE_COLORS[descriptor.state])
            click.echo(f"{name}: {state}")
            if descriptor.error is not None:
                click.echo(f"  error: {descriptor.error.message}")

        stats = hub.get_stats()
        click.echo(
            f"\n{stats['modules']['total_modules']} loaded, "
            f"{stats['services']['total_services']} services, "
            f"{stats['events']['total_listeners']} listeners, "
            f"{stats['hooks']['total_actions'] + stats['hooks']['total_filter_callbacks']} hook callbacks"
        )

    hub.shutdown()

    if hub.manager.get_stats()["failed"]:
        sys.exit(2)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
