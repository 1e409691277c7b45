"""
Command Line Interface for DepCon.
"""
import logging
import os
import subprocess
import sys

import click
from docker.errors import DockerException
from dotenv import set_key

from ..errors import DepContainersError
from ..MANAGERS.service_orchestrator import DependencyOrchestrator
from ..MODELS.container_identity import ContainerIdentity
from ..PARSERS.config_parser import ConfigParser


def _orchestrator(ctx) -> DependencyOrchestrator:
    config_file = ctx.obj['file']
    if not os.path.exists(config_file):
        raise click.ClickException(f"{config_file} not found.")
    config = ConfigParser().parse(config_file)
    base_dir = os.path.dirname(os.path.abspath(config_file))
    return DependencyOrchestrator(config, base_dir=base_dir)


def _create_and_start(ctx, parallel):
    orchestrator = _orchestrator(ctx)
    orchestrator.create()
    return orchestrator.start(parallel=parallel)


class _Group(click.Group):
    """Turns dependency container errors into clean CLI failures."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except (DepContainersError, DockerException) as e:
            raise click.ClickException(str(e)) from e


@click.group(cls=_Group)
@click.option('--file', '-f', default='depcontainers.yml', help='Dependency declaration file')
@click.option('--verbose', '-v', is_flag=True, help='Show debug output')
@click.pass_context
def cli(ctx, file, verbose):
    """
    DepCon - build and run the containers an integration test depends on.

    Dependencies are git repositories built with buildpacks; sidecars such as
    databases are started by worker processes.
    """
    ctx.ensure_object(dict)
    ctx.obj['file'] = file
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )


@cli.command()
@click.pass_context
def create(ctx):
    """Fetch and build every dependency image."""
    _orchestrator(ctx).create()
    click.echo("Dependency images are up to date.")


@cli.command()
@click.option('--env-file', type=click.Path(dir_okay=False), help='Also write the variables to this .env file')
@click.option('--parallel', is_flag=True, help='Start dependency containers concurrently')
@click.pass_context
def start(ctx, env_file, parallel):
    """Build, then start all dependency containers and print their variables."""
    env = _create_and_start(ctx, parallel)
    if env_file:
        open(env_file, "a").close()
    for key, value in env.items():
        click.echo(f"{key}={value}")
        if env_file:
            set_key(env_file, key, value, quote_mode="never")


@cli.command()
@click.pass_context
def stop(ctx):
    """Stop all dependency containers."""
    _orchestrator(ctx).stop()
    click.echo("Dependency containers stopped.")


@cli.command()
@click.pass_context
def ps(ctx):
    """List dependency status"""
    status = _orchestrator(ctx).ps()
    click.echo(f"{'DEPENDENCY':30} {'ENDPOINT'}")
    click.echo("-" * 60)
    for name, endpoint in status.items():
        click.echo(f"{name:30} {endpoint or 'stopped'}")


@cli.command(context_settings={'ignore_unknown_options': True})
@click.option('--parallel', is_flag=True, help='Start dependency containers concurrently')
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx, parallel, command):
    """Run COMMAND with the dependency containers' variables set."""
    env = dict(os.environ)
    env.update(_create_and_start(ctx, parallel))
    try:
        result = subprocess.run(list(command), env=env)
    except OSError as e:
        raise click.ClickException(f"Cannot run {command[0]}: {e}") from e
    sys.exit(result.returncode)


@cli.command()
@click.argument('repository')
@click.argument('ref')
@click.option('--subdirectory', '-s', default=None, help='Project directory inside the repository')
def identity(repository, ref, subdirectory):
    """Show the names derived for a dependency."""
    try:
        ident = ContainerIdentity(repository=repository, ref=ref, subdirectory=subdirectory)
        click.echo(f"name:      {ident.name}")
        click.echo(f"image:     {ident.image_tag}")
        click.echo(f"env var:   {ident.env_var}")
        click.echo(f"namespace: {ident.package_namespace}")
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
