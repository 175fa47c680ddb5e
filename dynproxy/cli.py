import logging

import click

from dynproxy.base import InvalidArgumentError, ProxyError, qualified_name
from dynproxy.descriptor import is_interface, registry
from dynproxy.factory import ProxyFactory
from dynproxy.loader import load_target
from dynproxy.proxy import INTERFACES_FIELD


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug messages.")
def cli(verbose):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.argument("target")
@click.option("--closure", is_flag=True, help="Include extended interfaces.")
def describe(target, closure):
    "Print the method descriptors of an interface"
    try:
        interface = load_target(target)
        if not is_interface(interface):
            raise InvalidArgumentError(f"{target} is not an interface")
        pending = [interface]
        seen: list[type] = []
        while pending:
            current = pending.pop(0)
            if current in seen:
                continue
            seen.append(current)
            descriptor = registry.register(current)
            click.echo(descriptor.name)
            for method in descriptor.methods:
                click.echo(f"  {method}")
            if closure:
                pending[:0] = descriptor.extends
    except ProxyError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("target")
@click.option(
    "--interface",
    "is_interface",
    is_flag=True,
    help="Proxy TARGET itself rather than the interfaces it implements.",
)
def blueprint(target, is_interface):
    "Build the proxy blueprint for a class and list its interfaces"
    try:
        cls = load_target(target)
        blueprint = ProxyFactory.get_instance().get_blueprint(cls, is_interface)
    except ProxyError as e:
        raise click.ClickException(str(e)) from e
    click.echo(qualified_name(blueprint))
    for interface in getattr(blueprint, INTERFACES_FIELD):
        click.echo(f"  {qualified_name(interface)}")


def run():
    cli()
