from pathlib import Path

import click

from xchain_deployment.constants import CONFIG_DIR, LINK_CATEGORIES
from xchain_deployment.types import ChecksumAddress, DeploymentKey

yes_option = click.option(
    "--yes",
    "-y",
    "skip_confirmation",
    help="Skip confirmation prompts and sign transactions automatically.",
    is_flag=True,
    default=False,
)

params_filepath_option = click.option(
    "--params-filepath",
    "-p",
    help="Deployment parameters YAML file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

config_name_option = click.option(
    "--config-name",
    help="Address book name; defaults to '<ecosystem>-<network>' of the connected network",
    type=click.STRING,
    required=False,
)

config_dir_option = click.option(
    "--config-dir",
    help="Directory holding the per-network address books",
    type=click.Path(file_okay=False, path_type=Path),
    default=CONFIG_DIR,
    show_default=True,
)

contract_name_option = click.option(
    "--contract-name",
    "-c",
    help="Name of the contract in the address book",
    type=click.STRING,
    required=True,
)

category_option = click.option(
    "--category",
    "categories",
    help="Link category to replay; all categories by default",
    type=click.Choice(LINK_CATEGORIES),
    multiple=True,
)

verify_option = click.option(
    "--verify",
    help="Publish newly deployed contracts to the network's explorer",
    is_flag=True,
    default=False,
)

sender_option = click.option(
    "--sender",
    help="Address submitting the factory transaction; defaults to the deployer account",
    type=ChecksumAddress(),
    required=False,
)

salt_option = click.option(
    "--salt",
    "-s",
    help="Deployment key hashed into the CREATE2 salt; defaults to the plan's salt",
    type=DeploymentKey(),
    required=False,
)
