#!/usr/bin/python3

from pathlib import Path
from typing import List, Optional, Tuple

import click

from xchain_deployment.options import config_dir_option
from xchain_deployment.registry import NetworkConfig, load_config


def _format_network_name(config_name: str) -> str:
    """Capitalize each part of the address book name and join with slashes."""
    return "/".join(word.capitalize() for word in config_name.split("-"))


def _get_address_books(
    config_dir: Path, config_name: Optional[str] = None
) -> List[Tuple[str, NetworkConfig]]:
    """Parse the address books in config_dir, or only the one named config_name."""
    address_books = list()
    for filepath in sorted(Path(config_dir).glob("*.json")):
        if config_name and config_name != filepath.stem:
            continue
        address_books.append((filepath.stem, load_config(filepath.stem, config_dir)))
    return address_books


def _display_address_books(address_books: List[Tuple[str, NetworkConfig]]) -> None:
    for config_name, config in address_books:
        click.secho(f"\n{_format_network_name(config_name)}", fg="green")

        for index, (contract_name, record) in enumerate(config.contracts.items(), start=1):
            if not record.address:
                click.secho(f"    {index}. {contract_name} (not deployed)", fg="yellow")
                continue
            click.secho(
                f"    {index}. {contract_name} {record.address} [{record.deployment_method}]",
                fg="cyan",
            )
            if record.implementation:
                click.secho(f"        implementation {record.implementation}", fg="cyan")

        for symbol, token in config.tokens.items():
            click.secho(f"    {symbol} {token.address} ({token.token_id})", fg="yellow")


@click.command(name="list-contracts")
@click.option(
    "--config-name",
    help="Only list this address book, e.g. avalanche-fuji",
    type=click.STRING,
)
@config_dir_option
def cli(config_name, config_dir):
    """List all contracts in the address books. Optionally filter by network."""
    address_books = _get_address_books(config_dir, config_name)
    if not address_books:
        click.secho(f"No address books found in {config_dir}", fg="yellow")
    _display_address_books(address_books)


if __name__ == "__main__":
    cli()
