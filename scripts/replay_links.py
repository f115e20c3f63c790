#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from xchain_deployment.chain import Transactor, get_artifact
from xchain_deployment.constants import DONATE
from xchain_deployment.options import (
    category_option,
    config_dir_option,
    config_name_option,
    yes_option,
)
from xchain_deployment.pipeline import raise_for_report, run_links
from xchain_deployment.utils import network_config_name


@click.command(cls=ConnectedProviderCommand, name="replay-links")
@account_option()
@network_option(required=True)
@click.option(
    "--contract-name",
    "-c",
    help="Name of the contract in the address book",
    type=click.STRING,
    default=DONATE,
    show_default=True,
)
@click.option(
    "--contract-type",
    help="Artifact of the contract; defaults to the contract name",
    type=click.STRING,
    required=False,
)
@category_option
@config_name_option
@config_dir_option
@yes_option
def cli(
    network,
    account,
    contract_name,
    contract_type,
    categories,
    config_name,
    config_dir,
    skip_confirmation,
):
    """Replay the known chains, tokens, charities and analytics tokens of a contract."""
    config_name = config_name or network_config_name()
    click.echo(f"Connected to {network.name} network; using address book '{config_name}'.")

    transactor = Transactor(account=account, autosign=skip_confirmation)
    report = run_links(
        network=config_name,
        contract_name=contract_name,
        artifact=get_artifact(contract_type or contract_name, transactor),
        config_dir=config_dir,
        categories=list(categories) or None,
    )
    raise_for_report(report)


if __name__ == "__main__":
    cli()
