#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option
from eth_utils import is_same_address

from xchain_deployment.chain import ProxyDeployer, Transactor, factory_contract, get_artifact
from xchain_deployment.constants import PROXY
from xchain_deployment.create2 import get_salt_from_key, predict_deployed_address
from xchain_deployment.options import (
    config_dir_option,
    config_name_option,
    contract_name_option,
    params_filepath_option,
    salt_option,
    sender_option,
)
from xchain_deployment.params import DeploymentPlan
from xchain_deployment.registry import load_config
from xchain_deployment.utils import network_config_name, print_info, print_warn


def _predict(factory, label, key, init_bytecode, sender, transactor):
    salt_bytes = get_salt_from_key(key)
    print_info(f"{label} deployment key", key)
    print_info("Salt", "0x" + salt_bytes.hex())

    predicted = predict_deployed_address(factory.address, sender, init_bytecode, key)
    print_info(f"Predicted {label} address", predicted)
    reported = factory.call("deployedAddress", init_bytecode, sender, salt_bytes)
    print_info("Factory deployedAddress", reported)

    if not is_same_address(predicted, reported):
        raise click.ClickException(f"Prediction {predicted} differs from factory's {reported}")
    if transactor.get_code(predicted):
        print_warn(f"Code already exists at {predicted}; this key and bytecode are taken")
    return predicted


@click.command(cls=ConnectedProviderCommand, name="predict-address")
@account_option()
@network_option(required=True)
@params_filepath_option
@contract_name_option
@salt_option
@sender_option
@config_name_option
@config_dir_option
def cli(network, account, params_filepath, contract_name, salt, sender, config_name, config_dir):
    """
    Predict where the constant address deployer will place a contract, both locally and
    with the deployer's own deployedAddress view, before anything is sent. For a
    deterministic proxy both the logic contract and the proxy are predicted.
    """
    config_name = config_name or network_config_name()
    config = load_config(config_name, config_dir)
    contract_plan = DeploymentPlan.from_yaml(filepath=params_filepath)[contract_name]
    if salt:
        contract_plan.salt = salt

    if not contract_plan.salt:
        raise click.BadOptionUsage("--salt", f"{contract_name} has no salt; provide one")
    factory_address = config.get_address(contract_plan.factory)
    if not factory_address:
        raise click.ClickException(f"{contract_plan.factory} is not in '{config_name}'")

    transactor = Transactor(account=account)
    sender = sender or transactor.address
    print_info("Sender", sender)
    factory = factory_contract(factory_address, transactor)
    artifact = get_artifact(contract_plan.contract_type, transactor)
    context = contract_plan.context(config, sender)
    constructor_args = contract_plan.resolve_constructor(context)
    init_bytecode = artifact.init_bytecode(*constructor_args.values())

    if contract_plan.method != PROXY:
        _predict(factory, contract_name, contract_plan.salt, init_bytecode, sender, transactor)
        return

    implementation = _predict(
        factory,
        f"{contract_name} implementation",
        contract_plan.implementation_salt,
        init_bytecode,
        sender,
        transactor,
    )
    init_data = b""
    if contract_plan.initializer is not None:
        args = contract_plan.resolve_call(contract_plan.initializer, context)
        init_data = artifact.encode_call(contract_plan.initializer.function, *args.values())
    proxy_bytecode = ProxyDeployer(transactor).init_bytecode(implementation, sender, init_data)
    _predict(factory, f"{contract_name} proxy", contract_plan.salt, proxy_bytecode, sender, transactor)


if __name__ == "__main__":
    cli()
