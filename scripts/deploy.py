#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from xchain_deployment.chain import ProxyDeployer, Transactor, factory_contract, get_artifact
from xchain_deployment.options import (
    config_dir_option,
    config_name_option,
    params_filepath_option,
    verify_option,
    yes_option,
)
from xchain_deployment.params import DeploymentPlan
from xchain_deployment.pipeline import raise_for_report, run_deployment
from xchain_deployment.utils import (
    check_etherscan_plugin,
    get_contract_container,
    is_local_network,
    network_config_name,
    verify_contracts,
)


def _verification_targets(report) -> list:
    """Freshly deployed instances to publish; proxies are published through their logic."""
    instances = list()
    for result in report.results:
        if not (result.deployed and result.succeeded):
            continue
        instance = result.contract.instance
        if result.implementation:
            container = get_contract_container(instance.contract_type.name)
            instance = container.at(result.implementation)
        instances.append(instance)
    return instances


@click.command(cls=ConnectedProviderCommand, name="deploy")
@account_option()
@network_option(required=True)
@params_filepath_option
@config_name_option
@config_dir_option
@yes_option
@verify_option
@click.option(
    "--contract-name",
    "-c",
    "contract_names",
    help="Only reconcile these contracts of the plan",
    type=click.STRING,
    multiple=True,
)
@click.option("--skip-links", help="Do not replay link lists.", is_flag=True)
def cli(
    network,
    account,
    params_filepath,
    config_name,
    config_dir,
    skip_confirmation,
    verify,
    contract_names,
    skip_links,
):
    """Deploy (or attach to) the contracts of a deployment plan and replay their links."""
    if verify:
        check_etherscan_plugin()
    config_name = config_name or network_config_name()
    click.echo(f"Connected to {network.name} network; using address book '{config_name}'.")

    plan = DeploymentPlan.from_yaml(filepath=params_filepath)
    transactor = Transactor(account=account, autosign=skip_confirmation)
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
        contract_names=list(contract_names),
    )

    if verify and not is_local_network():
        verify_contracts(_verification_targets(report))
    raise_for_report(report)


if __name__ == "__main__":
    cli()
