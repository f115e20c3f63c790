#!/usr/bin/python3

import click
from ape import networks
from ape.cli import account_option

from xchain_deployment.chain import ProxyDeployer, Transactor, factory_contract, get_artifact
from xchain_deployment.options import config_dir_option, params_filepath_option, yes_option
from xchain_deployment.params import DeploymentPlan
from xchain_deployment.pipeline import raise_for_report, run_deployment
from xchain_deployment.utils import network_config_name, print_error


@click.command(name="deploy-multichain")
@account_option()
@click.option(
    "--network",
    "network_choices",
    help="Ape network choice, e.g. avalanche:fuji:alchemy; repeat for every network",
    type=click.STRING,
    multiple=True,
    required=True,
)
@params_filepath_option
@config_dir_option
@yes_option
@click.option("--skip-links", help="Do not replay link lists.", is_flag=True)
def cli(account, network_choices, params_filepath, config_dir, skip_confirmation, skip_links):
    """Run the same deployment plan on several networks, one after the other."""
    plan = DeploymentPlan.from_yaml(filepath=params_filepath)
    transactor = Transactor(account=account, autosign=skip_confirmation)

    failed_networks = list()
    for choice in network_choices:
        with networks.parse_network_choice(choice):
            config_name = network_config_name()
            click.secho(f"\n==== {config_name} ====", fg="green")
            report = run_deployment(
                network=config_name,
                plan=plan,
                transactor=transactor,
                get_artifact=lambda contract_type: get_artifact(contract_type, transactor),
                factory_at=lambda address: factory_contract(address, transactor),
                proxies=ProxyDeployer(transactor),
                config_dir=config_dir,
                skip_confirmation=skip_confirmation,
                link=not skip_links,
            )
        try:
            raise_for_report(report)
        except click.ClickException as e:
            print_error(e.format_message())
            failed_networks.append(config_name)
        if report.aborted:
            break

    if failed_networks:
        raise click.ClickException(f"Deployment failed on {', '.join(failed_networks)}")


if __name__ == "__main__":
    cli()
