from collections import OrderedDict

from ape.utils import ZERO_ADDRESS


def confirm(question: str, skip: bool = False) -> bool:
    """
    Asks the operator a yes/no question; only an explicit 'y' proceeds.
    With skip set (non-interactive runs) the question is not asked.
    """
    if skip:
        return True
    answer = input(f"{question} Y/N? ")
    print()
    return answer.lower().strip() == "y"


def _confirm_zero_address(skip: bool = False) -> bool:
    return confirm("Zero Address detected for deployment parameter; Continue?", skip=skip)


def confirm_resolution(resolved_params: OrderedDict, contract_name: str, skip: bool = False) -> bool:
    """Shows the resolved deployment parameters of a contract and asks to deploy it."""
    if len(resolved_params) == 0:
        print(f"\n(i) No deployment parameters for {contract_name}")
        return confirm(f"Deploy {contract_name}?", skip=skip)

    print(f"\nDeployment parameters for {contract_name}")
    contains_zero_address = False
    for name, resolved_value in resolved_params.items():
        print(f"\t{name}={resolved_value}")
        if not contains_zero_address:
            contains_zero_address = resolved_value == ZERO_ADDRESS

    if not confirm(
        f"Do you want to proceed with deployment of {contract_name}? "
        "(double check everything first!)",
        skip=skip,
    ):
        return False
    if contains_zero_address:
        return _confirm_zero_address(skip=skip)
    return True
