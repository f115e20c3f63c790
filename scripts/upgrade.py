#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from xchain_deployment.chain import ProxyDeployer, Transactor, get_artifact
from xchain_deployment.constants import DEPLOY_PARAMS_DIR
from xchain_deployment.options import (
    config_dir_option,
    config_name_option,
    contract_name_option,
    verify_option,
    yes_option,
)
from xchain_deployment.params import DeploymentPlan
from xchain_deployment.pipeline import raise_for_report, run_upgrade
from xchain_deployment.utils import (
    check_etherscan_plugin,
    get_contract_container,
    is_local_network,
    network_config_name,
    verify_contracts,
)


@click.command(cls=ConnectedProviderCommand, name="upgrade")
@account_option()
@network_option(required=True)
@click.option(
    "--params-filepath",
    "-p",
    help="Upgrade parameters YAML file",
    type=click.Path(dir_okay=False, exists=True),
    default=str(DEPLOY_PARAMS_DIR / "upgrade-donate.yml"),
    show_default=True,
)
@contract_name_option
@config_name_option
@config_dir_option
@yes_option
@verify_option
def cli(
    network,
    account,
    params_filepath,
    contract_name,
    config_name,
    config_dir,
    skip_confirmation,
    verify,
):
    """Upgrade a recorded transparent proxy to freshly deployed logic."""
    if verify:
        check_etherscan_plugin()
    config_name = config_name or network_config_name()
    click.echo(f"Connected to {network.name} network; using address book '{config_name}'.")

    plan = DeploymentPlan.from_yaml(filepath=params_filepath)
    transactor = Transactor(account=account, autosign=skip_confirmation)
    report = run_upgrade(
        network=config_name,
        plan=plan,
        contract_name=contract_name,
        transactor=transactor,
        get_artifact=lambda contract_type: get_artifact(contract_type, transactor),
        proxies=ProxyDeployer(transactor),
        config_dir=config_dir,
        skip_confirmation=skip_confirmation,
    )

    if verify and not is_local_network():
        for result in report.results:
            if result.succeeded:
                container = get_contract_container(plan[contract_name].contract_type)
                verify_contracts([container.at(result.implementation)])
    raise_for_report(report)


if __name__ == "__main__":
    cli()
