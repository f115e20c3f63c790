"""
Ape-backed collaborators of the reconcilers: the signing account, contract handles,
artifacts (bytecode + ABI) and the upgradeable proxy primitives.
"""
import typing
from typing import Any, List, Optional

from ape import Contract, chain, project
from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.exceptions import ApeException
from ape.utils import EMPTY_BYTES32
from eth_abi import encode
from eth_typing import ChecksumAddress
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from ethpm_types import MethodABI
from hexbytes import HexBytes
from web3.auto import w3

from xchain_deployment.confirm import confirm
from xchain_deployment.constants import (
    CONST_ADDRESS_DEPLOYER_ABI,
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    OZ_DEPENDENCY_NAME,
    OZ_DEPENDENCY_VERSION,
)
from xchain_deployment.exceptions import ProxyImportError, TransactionFailure, UserAborted
from xchain_deployment.utils import get_contract_container, print_warn


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Tuple[MethodABI, typing.Dict[str, Any]]:
    """Finds the ABI matching the transaction arguments; returns it with the named arguments."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.canonical_type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return abi, named_args
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _encode_args(abi_inputs, args: typing.Sequence[Any]) -> bytes:
    return encode([abi_input.canonical_type for abi_input in abi_inputs], list(args))


def _storage_address(slot_value: bytes) -> Optional[ChecksumAddress]:
    if not slot_value or HexBytes(slot_value) == HexBytes(EMPTY_BYTES32):
        return None
    return to_checksum_address(HexBytes(slot_value)[-20:])


class Transactor:
    """
    Represents an ape account plus validated/annotated transaction execution.
    """

    def __init__(self, account: typing.Optional[AccountAPI] = None, autosign: bool = False):
        if account is None:
            self._account = select_account()
        else:
            self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._autosign = autosign
        self._account.set_autosign(autosign)

    @property
    def address(self) -> ChecksumAddress:
        return self._account.address

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        _, named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {method.contract.contract_type.name}"
            f"[{method.contract.address[:10]}].{method}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not confirm("Continue?", skip=self._autosign):
            raise UserAborted(f"Transaction to {method.contract.address} declined")

        try:
            receipt = method(*args, sender=self._account)
        except ApeException as e:
            raise TransactionFailure(f"{method} failed: {e}") from e
        print("Sent transaction", receipt.txn_hash)
        return receipt

    def deploy(self, artifact: "ApeArtifact", *args) -> "ApeContract":
        print(f"\nDeploying {artifact.name}...")
        try:
            instance = self._account.deploy(artifact.container, *args)
        except ApeException as e:
            raise TransactionFailure(f"Deployment of {artifact.name} failed: {e}") from e
        return ApeContract(instance=instance, transactor=self)

    def get_code(self, address: str) -> bytes:
        return bytes(chain.provider.get_code(address))

    def get_storage(self, address: str, slot: int) -> bytes:
        return bytes(chain.provider.web3.eth.get_storage_at(address, slot))


class ApeContract:
    """A deployed contract reachable through read-only calls and signed transactions."""

    def __init__(self, instance: ContractInstance, transactor: Transactor):
        self.instance = instance
        self.transactor = transactor

    @property
    def address(self) -> ChecksumAddress:
        return self.instance.address

    def call(self, function: str, *args) -> Any:
        return getattr(self.instance, function)(*args)

    def send(self, function: str, *args) -> ReceiptAPI:
        return self.transactor.transact(getattr(self.instance, function), *args)

    def deployed_code(self) -> bytes:
        return self.transactor.get_code(self.address)


class ApeArtifact:
    """Bytecode and ABI of a compiled contract."""

    def __init__(self, container: ContractContainer, transactor: Transactor):
        self.container = container
        self.transactor = transactor

    @property
    def name(self) -> str:
        return self.container.contract_type.name

    @property
    def runtime_bytecode(self) -> bytes:
        return bytes(self.container.contract_type.get_runtime_bytecode() or b"")

    def init_bytecode(self, *args) -> bytes:
        """Creation bytecode followed by the ABI-encoded constructor arguments."""
        deployment_bytecode = self.container.contract_type.get_deployment_bytecode()
        if not deployment_bytecode:
            raise ValueError(f"{self.name} has no deployment bytecode; is it compiled?")
        abi_inputs = self.container.constructor.abi.inputs
        if len(abi_inputs) != len(args):
            raise ValueError(
                f"{self.name} constructor requires {len(abi_inputs)} argument(s), got {len(args)}"
            )
        return bytes(deployment_bytecode) + _encode_args(abi_inputs, args)

    def encode_call(self, function: str, *args) -> bytes:
        method_abis = [abi for abi in self.container.contract_type.methods if abi.name == function]
        if not method_abis:
            raise ValueError(f"{self.name} has no function named '{function}'")
        abi, _ = _validate_method_args(method_abis=method_abis, args=args)
        return function_signature_to_4byte_selector(abi.selector) + _encode_args(abi.inputs, args)

    def at(self, address: str) -> ApeContract:
        return ApeContract(instance=self.container.at(address), transactor=self.transactor)


def get_artifact(contract_type: str, transactor: Transactor) -> ApeArtifact:
    return ApeArtifact(container=get_contract_container(contract_type), transactor=transactor)


def factory_contract(address: str, transactor: Transactor) -> ApeContract:
    """The constant address deployer at address, bound to its minimal ABI."""
    instance = Contract(address, abi=CONST_ADDRESS_DEPLOYER_ABI)
    return ApeContract(instance=instance, transactor=transactor)


class ProxyDeployer:
    """
    OpenZeppelin transparent upgradeable proxies: deployment, EIP1967 introspection
    and upgrades through the proxy's ProxyAdmin.
    """

    def __init__(self, transactor: Transactor):
        self.transactor = transactor

    @property
    def dependency(self):
        return project.dependencies[OZ_DEPENDENCY_NAME][OZ_DEPENDENCY_VERSION]

    @property
    def proxy_artifact(self) -> ApeArtifact:
        return ApeArtifact(self.dependency.TransparentUpgradeableProxy, self.transactor)

    def init_bytecode(self, logic: str, owner: str, data: bytes) -> bytes:
        return self.proxy_artifact.init_bytecode(logic, owner, data)

    def deploy(self, logic: str, owner: str, data: bytes) -> ApeContract:
        return self.transactor.deploy(self.proxy_artifact, logic, owner, data)

    def implementation(self, proxy_address: str) -> Optional[ChecksumAddress]:
        slot = self.transactor.get_storage(proxy_address, EIP1967_IMPLEMENTATION_SLOT)
        return _storage_address(slot)

    def admin(self, proxy_address: str) -> ChecksumAddress:
        slot = self.transactor.get_storage(proxy_address, EIP1967_ADMIN_SLOT)
        admin_address = _storage_address(slot)
        if admin_address is None:
            raise ValueError(
                f"Admin slot for contract at {proxy_address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?"
            )
        return admin_address

    def import_proxy(self, proxy_address: str, old_artifact: ApeArtifact) -> ChecksumAddress:
        """
        Registers an existing proxy under its current implementation, after checking that
        the implementation's code is the old artifact's runtime bytecode.
        """
        from ape_ethereum.proxies import ProxyInfo, ProxyType

        implementation = self.implementation(proxy_address)
        if implementation is None:
            raise ProxyImportError(f"{proxy_address} does not report an EIP1967 implementation")
        code = self.transactor.get_code(implementation)
        if HexBytes(code) != HexBytes(old_artifact.runtime_bytecode):
            raise ProxyImportError(
                f"Implementation {implementation} of proxy {proxy_address} "
                f"does not match {old_artifact.name}"
            )
        chain.contracts.cache_proxy_info(
            proxy_address, ProxyInfo(type=ProxyType.Standard, target=implementation)
        )
        return implementation

    def upgrade(self, proxy_address: str, logic: str, data: bytes) -> ReceiptAPI:
        admin_address = self.admin(proxy_address)
        proxy_admin = self.dependency.ProxyAdmin.at(admin_address)
        owner = proxy_admin.owner()
        if owner != self.transactor.address:
            print_warn(f"ProxyAdmin {admin_address} is owned by {owner}, not the deployer")
        return self.transactor.transact(proxy_admin.upgradeAndCall, proxy_address, logic, data)
