from eth_utils import is_same_address

from xchain_deployment.confirm import confirm
from xchain_deployment.exceptions import NotDeployed, TransactionFailure, UserAborted
from xchain_deployment.params import ContractPlan
from xchain_deployment.reconciler import (
    DeploymentState,
    ReconcileResult,
    print_codehash,
    verify_deployment,
)
from xchain_deployment.registry import NetworkConfig
from xchain_deployment.utils import print_info, print_status


class UpgradeReconciler:
    """
    Points a recorded transparent proxy at freshly deployed logic.

    The proxy address is kept; on a verified upgrade only the recorded
    implementation changes.
    """

    def __init__(self, config: NetworkConfig, transactor, proxies, skip_confirmation: bool = False):
        self.config = config
        self.transactor = transactor
        self.proxies = proxies
        self.skip_confirmation = skip_confirmation

    def upgrade(self, plan: ContractPlan, artifact, previous_artifact=None) -> ReconcileResult:
        result = ReconcileResult(contract_name=plan.name)
        record = self.config.contracts.get(plan.name)
        if record is None or not record.address:
            raise NotDeployed(plan.name)
        proxy_address = record.address

        plan.check_dependencies(self.config)
        context = plan.context(self.config, self.transactor.address)
        constructor_args = plan.resolve_constructor(context)
        reinitializer_args = plan.resolve_call(plan.reinitializer, context)
        expectations = plan.resolve_verify(context)

        print_info(f"{plan.name} proxy address", proxy_address)
        print_info("Current implementation", self.proxies.implementation(proxy_address))
        result.transition(DeploymentState.ATTACHED)

        if previous_artifact is not None:
            print_info(f"Importing {plan.name} proxy with implementation", previous_artifact.name)
            self.proxies.import_proxy(proxy_address, previous_artifact)

        if plan.reinitializer is not None:
            print(f"\nReinitializer {plan.reinitializer.function}")
            for name, value in reinitializer_args.items():
                print(f"\t{name}={value}")
        if not confirm(
            f"Do you want to upgrade {plan.name} to {artifact.name}? "
            "(double check everything first!)",
            skip=self.skip_confirmation,
        ):
            raise UserAborted(f"Upgrade of {plan.name} declined")
        result.transition(DeploymentState.PENDING_CONFIRMATION)

        implementation = self.transactor.deploy(artifact, *constructor_args.values())
        data = b""
        if plan.reinitializer is not None:
            data = artifact.encode_call(plan.reinitializer.function, *reinitializer_args.values())
        self.proxies.upgrade(proxy_address, implementation.address, data)

        reported = self.proxies.implementation(proxy_address)
        if not reported or not is_same_address(reported, implementation.address):
            raise TransactionFailure(
                f"{plan.name} proxy at {proxy_address} reports implementation {reported}, "
                f"expected {implementation.address}"
            )
        result.transition(DeploymentState.DEPLOYED)

        contract = artifact.at(proxy_address)
        result.contract = contract
        result.implementation = implementation.address
        print_info(f"{plan.name} implementation", implementation.address)
        print_codehash(contract)

        mismatches = verify_deployment(contract, expectations)
        if mismatches:
            result.mismatches = mismatches
            result.transition(DeploymentState.FAILED)
            print_status("Upgrade", success=False)
            return result

        record.implementation = implementation.address
        result.transition(DeploymentState.VERIFIED)
        print_status("Upgrade", success=True)
        return result
