import dataclasses
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional, Tuple

from eth_utils import is_address, is_same_address, keccak
from hexbytes import HexBytes

from xchain_deployment.confirm import confirm_resolution
from xchain_deployment.constants import CREATE2, DIRECT, PROXY
from xchain_deployment.create2 import get_salt_from_key, predict_deployed_address
from xchain_deployment.exceptions import (
    AddressMismatch,
    SaltCollision,
    TransactionFailure,
    UserAborted,
    VerificationMismatch,
)
from xchain_deployment.params import ContractPlan
from xchain_deployment.registry import ContractRecord, NetworkConfig
from xchain_deployment.utils import print_error, print_info, print_status


class DeploymentState(Enum):
    UNCONFIGURED = "unconfigured"
    ATTACHED = "attached"
    PENDING_CONFIRMATION = "pending confirmation"
    DEPLOYED = "deployed"
    VERIFIED = "verified"
    FAILED = "failed"


# Allowed transitions; anything else is a programming error
_TRANSITIONS = {
    DeploymentState.UNCONFIGURED: (DeploymentState.ATTACHED, DeploymentState.PENDING_CONFIRMATION),
    DeploymentState.ATTACHED: (
        DeploymentState.PENDING_CONFIRMATION,
        DeploymentState.VERIFIED,
        DeploymentState.FAILED,
    ),
    DeploymentState.PENDING_CONFIRMATION: (DeploymentState.DEPLOYED,),
    DeploymentState.DEPLOYED: (DeploymentState.VERIFIED, DeploymentState.FAILED),
    DeploymentState.VERIFIED: (),
    DeploymentState.FAILED: (),
}


class Mismatch(NamedTuple):
    """A cross-reference whose live value differs from the configured one."""

    field: str
    expected: Any
    actual: Any


@dataclass
class ReconcileResult:
    contract_name: str
    states: List[DeploymentState] = field(default_factory=lambda: [DeploymentState.UNCONFIGURED])
    contract: Any = None
    implementation: Optional[str] = None
    mismatches: List[Mismatch] = field(default_factory=list)

    @property
    def state(self) -> DeploymentState:
        return self.states[-1]

    @property
    def attached(self) -> bool:
        return DeploymentState.ATTACHED in self.states

    @property
    def deployed(self) -> bool:
        return DeploymentState.DEPLOYED in self.states

    @property
    def succeeded(self) -> bool:
        return self.state == DeploymentState.VERIFIED

    def transition(self, state: DeploymentState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"{self.contract_name}: invalid transition {self.state.name} -> {state.name}"
            )
        self.states.append(state)

    def raise_for_status(self) -> None:
        if self.state == DeploymentState.FAILED:
            raise VerificationMismatch(self.contract_name, self.mismatches)


def _same_value(expected: Any, actual: Any) -> bool:
    if isinstance(expected, str) and is_address(expected):
        return is_address(actual) and is_same_address(expected, actual)
    if isinstance(expected, (bytes, bytearray)) or (
        isinstance(expected, str) and expected.startswith("0x")
    ):
        try:
            return HexBytes(expected) == HexBytes(actual)
        except (TypeError, ValueError):
            return False
    return expected == actual


def verify_deployment(contract, expectations: "OrderedDict[str, Any]") -> List[Mismatch]:
    """
    Reads every expected cross-reference from the live contract and
    returns the ones that differ from the configuration.
    """
    mismatches = list()
    for view, expected in expectations.items():
        actual = contract.call(view)
        print_info(f"Existing {view}", actual)
        if not _same_value(expected, actual):
            print_error(f"ERROR: Retrieved {view} is different")
            print_error(f"   Actual:   {actual}")
            print_error(f"   Expected: {expected}")
            mismatches.append(Mismatch(field=view, expected=expected, actual=actual))
    return mismatches


def print_codehash(contract) -> None:
    codehash = keccak(bytes(contract.deployed_code())).hex()
    print_info("Codehash", codehash)


class DeploymentReconciler:
    """
    Converges a contract's network config entry and its on-chain deployment.

    A contract with a recorded address is attached to; anything else is deployed using
    the plan's strategy once the operator confirms. Either way the live contract's
    cross-references are verified before the record is written to the (in-memory)
    config. A failed verification leaves the config untouched.
    """

    def __init__(
        self,
        config: NetworkConfig,
        transactor,
        factory_at: Callable[[str], Any],
        proxies=None,
        skip_confirmation: bool = False,
    ):
        self.config = config
        self.transactor = transactor
        self.factory_at = factory_at
        self.proxies = proxies
        self.skip_confirmation = skip_confirmation

    def reconcile(self, plan: ContractPlan, artifact) -> ReconcileResult:
        result = ReconcileResult(contract_name=plan.name)
        plan.check_dependencies(self.config)

        context = plan.context(self.config, self.transactor.address)
        expectations = plan.resolve_verify(context)

        record = self.config.contracts.get(plan.name)
        new_record = None
        if record is not None and record.address:
            print_info(f"{plan.name} contract already exists in config, not redeploying...")
            contract = artifact.at(record.address)
            result.transition(DeploymentState.ATTACHED)
        else:
            constructor_args = plan.resolve_constructor(context)
            initializer_args = plan.resolve_call(plan.initializer, context)
            if plan.salt:
                print_info("Contract deploy salt", plan.salt)

            resolved_params = OrderedDict(constructor_args)
            if plan.initializer is not None:
                for name, value in initializer_args.items():
                    resolved_params[f"{plan.initializer.function}.{name}"] = value
            if not confirm_resolution(resolved_params, plan.name, skip=self.skip_confirmation):
                raise UserAborted(f"Deployment of {plan.name} declined")
            result.transition(DeploymentState.PENDING_CONFIRMATION)

            print_info(f"Deploying {plan.name} ({plan.method})...")
            contract, implementation = self._deploy(
                plan, artifact, list(constructor_args.values()), list(initializer_args.values())
            )
            result.transition(DeploymentState.DEPLOYED)
            new_record = dataclasses.replace(
                record or ContractRecord(),
                address=contract.address,
                deployer=self.transactor.address,
                deployment_method=plan.method,
                salt=plan.salt if plan.is_deterministic else None,
                implementation=implementation,
            )

        result.contract = contract
        result.implementation = new_record.implementation if new_record else record.implementation
        print_info(f"{plan.name} Address", contract.address)
        print_codehash(contract)

        mismatches = verify_deployment(contract, expectations)
        if mismatches:
            result.mismatches = mismatches
            result.transition(DeploymentState.FAILED)
            print_status("Deployment", success=False)
            return result

        if new_record is not None:
            self.config.contracts[plan.name] = new_record
        result.transition(DeploymentState.VERIFIED)
        print_status("Deployment", success=True)
        return result

    def _deploy(
        self, plan: ContractPlan, artifact, constructor_args: list, initializer_args: list
    ) -> Tuple[Any, Optional[str]]:
        if plan.method == CREATE2:
            init_bytecode = artifact.init_bytecode(*constructor_args)
            init_data = None
            if plan.initializer is not None:
                init_data = artifact.encode_call(plan.initializer.function, *initializer_args)
            address = self._deploy_create2(plan, plan.name, plan.salt, init_bytecode, init_data)
            return artifact.at(address), None

        elif plan.method == PROXY:
            return self._deploy_proxy(plan, artifact, constructor_args, initializer_args)

        elif plan.method == DIRECT:
            contract = self.transactor.deploy(artifact, *constructor_args)
            if plan.initializer is not None:
                contract.send(plan.initializer.function, *initializer_args)
            return contract, None

        raise ValueError(f"Unknown deployment method '{plan.method}'")

    def _deploy_create2(
        self,
        plan: ContractPlan,
        label: str,
        key: str,
        init_bytecode: bytes,
        init_data: bytes = None,
        reuse_existing: bool = False,
    ) -> str:
        factory_address = self.config.get_address(plan.factory)
        factory = self.factory_at(factory_address)
        sender = self.transactor.address
        salt = get_salt_from_key(key)

        predicted = predict_deployed_address(factory_address, sender, init_bytecode, key)
        print_info(f"Predicted {label} address", predicted)
        if self.transactor.get_code(predicted):
            if reuse_existing:
                # same key, sender and bytecode: the code there is this contract
                print_info(f"Reusing {label}", predicted)
                return predicted
            raise SaltCollision(label, predicted, key)

        if init_data:
            factory.send("deployAndInit", init_bytecode, salt, init_data)
        else:
            factory.send("deploy", init_bytecode, salt)

        actual = factory.call("deployedAddress", init_bytecode, sender, salt)
        if not is_same_address(actual, predicted):
            raise AddressMismatch(label, expected=predicted, actual=actual)
        return predicted

    def _deploy_implementation(self, plan: ContractPlan, artifact, constructor_args: list) -> str:
        if plan.implementation_salt:
            return self._deploy_create2(
                plan,
                f"{plan.name} implementation",
                plan.implementation_salt,
                artifact.init_bytecode(*constructor_args),
                reuse_existing=True,
            )
        return self.transactor.deploy(artifact, *constructor_args).address

    def _deploy_proxy(
        self, plan: ContractPlan, artifact, constructor_args: list, initializer_args: list
    ) -> Tuple[Any, str]:
        if self.proxies is None:
            raise ValueError(f"{plan.name} is configured as a proxy but no proxy deployer is set")

        implementation = self._deploy_implementation(plan, artifact, constructor_args)
        init_data = b""
        if plan.initializer is not None:
            init_data = artifact.encode_call(plan.initializer.function, *initializer_args)

        owner = self.transactor.address
        if plan.salt:
            proxy_bytecode = self.proxies.init_bytecode(implementation, owner, init_data)
            proxy_address = self._deploy_create2(
                plan, f"{plan.name} proxy", plan.salt, proxy_bytecode
            )
        else:
            proxy_address = self.proxies.deploy(implementation, owner, init_data).address

        reported = self.proxies.implementation(proxy_address)
        if not reported or not is_same_address(reported, implementation):
            raise TransactionFailure(
                f"{plan.name} proxy at {proxy_address} reports implementation {reported}, "
                f"expected {implementation}"
            )
        print_info(f"Wrapping {plan.name} implementation into proxy", proxy_address)
        return artifact.at(proxy_address), implementation
