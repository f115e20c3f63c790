import json
import os
from pathlib import Path
from typing import List

import click
import yaml
from ape import networks, project
from ape.contracts import ContractContainer, ContractInstance


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def print_info(message: str, info: str = "") -> None:
    if info:
        click.echo(f"{message}: " + click.style(str(info), fg="green"))
    else:
        click.echo(message)


def print_warn(message: str, info: str = "") -> None:
    if info:
        message = f"{message}: {info}"
    click.secho(message, fg="yellow", italic=True)


def print_error(message: str, info: str = "") -> None:
    if info:
        message = f"{message}: {info}"
    click.secho(message, fg="red", bold=True)


def print_status(step: str, success: bool) -> None:
    if success:
        print_info(f"{step} status", "SUCCESS")
    else:
        print_error(f"{step} status", "FAILED")


def is_local_network() -> bool:
    network_name = networks.provider.network.name
    return network_name == "local" or network_name.endswith("-fork")


def network_config_name() -> str:
    """Name of the address book of the connected network, e.g. 'avalanche-fuji'."""
    network = networks.provider.network
    return f"{network.ecosystem.name}-{network.name}"


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to verify contracts.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar)
    if not api_key:
        raise ValueError(f"{explorer_envvar} is not set.")


def verify_contracts(contracts: List[ContractInstance]) -> None:
    explorer = networks.provider.network.explorer
    for instance in contracts:
        print(f"(i) Verifying {instance.contract_type.name}...")
        explorer.publish_contract(instance.address)


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container
