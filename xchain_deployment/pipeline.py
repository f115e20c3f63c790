"""
End-to-end runs against a single network: load the address book, reconcile,
replay links and persist the address book once at the end.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import click

from xchain_deployment.constants import CONFIG_DIR
from xchain_deployment.exceptions import DeploymentError, MissingDependency, UserAborted
from xchain_deployment.links import LinkReplayer, LinkReport
from xchain_deployment.params import DeploymentPlan
from xchain_deployment.reconciler import DeploymentReconciler, ReconcileResult
from xchain_deployment.registry import NetworkConfig, load_config, save_config
from xchain_deployment.upgrade import UpgradeReconciler
from xchain_deployment.utils import print_error, print_info, print_status


@dataclass
class PipelineReport:
    network: str
    results: List[ReconcileResult] = field(default_factory=list)
    errors: Dict[str, DeploymentError] = field(default_factory=OrderedDict)
    links: Dict[str, LinkReport] = field(default_factory=OrderedDict)
    aborted: bool = False
    saved: Optional[Path] = None

    @property
    def changed(self) -> bool:
        return any(result.deployed and result.succeeded for result in self.results)

    @property
    def succeeded(self) -> bool:
        return (
            not self.aborted
            and not self.errors
            and all(result.succeeded for result in self.results)
            and all(report.succeeded for report in self.links.values())
        )

    def failures(self) -> List[str]:
        """One line per failed step, for the operator."""
        lines = [f"{name}: {error}" for name, error in self.errors.items()]
        for result in self.results:
            if not result.succeeded:
                for mismatch in result.mismatches:
                    lines.append(
                        f"{result.contract_name}: {mismatch.field} expected {mismatch.expected}, "
                        f"got {mismatch.actual}"
                    )
        for name, report in self.links.items():
            for category, error in report.failures.items():
                lines.append(f"{name} {category}: {error}")
        return lines


def _record_error(report: PipelineReport, name: str, error: DeploymentError) -> None:
    print_error(f"ERROR: {name}", str(error))
    report.errors[name] = error


def _replay_links(report: PipelineReport, config: NetworkConfig, result: ReconcileResult) -> None:
    record = config.contracts[result.contract_name]
    print(f"\nReplaying links of {result.contract_name}...")
    report.links[result.contract_name] = LinkReplayer().replay_all(result.contract, record, config)


def _save(report: PipelineReport, config: NetworkConfig, config_dir: Path) -> None:
    if report.changed:
        report.saved = save_config(config, report.network, config_dir)
    else:
        print("(i) No config changes to write.")


def run_deployment(
    network: str,
    plan: DeploymentPlan,
    transactor,
    get_artifact: Callable[[str], Any],
    factory_at: Callable[[str], Any],
    proxies=None,
    config_dir: Path = CONFIG_DIR,
    skip_confirmation: bool = False,
    link: bool = True,
    contract_names: List[str] = None,
) -> PipelineReport:
    """
    Deploys or attaches to every contract of the plan, in order. Records are reconciled
    independently: a failure is reported and the next record is still attempted.
    Verified deployments are persisted even when their link replay fails or an
    unexpected error stops the run.
    """
    config = load_config(network, config_dir)
    reconciler = DeploymentReconciler(
        config=config,
        transactor=transactor,
        factory_at=factory_at,
        proxies=proxies,
        skip_confirmation=skip_confirmation,
    )
    report = PipelineReport(network=network)

    try:
        for contract_plan in plan:
            if contract_names and contract_plan.name not in contract_names:
                continue
            print(f"\n---- {contract_plan.name} on {network} ----")
            try:
                result = reconciler.reconcile(
                    contract_plan, get_artifact(contract_plan.contract_type)
                )
            except UserAborted:
                raise
            except DeploymentError as e:
                _record_error(report, contract_plan.name, e)
                print_status("Deployment", success=False)
                continue

            report.results.append(result)
            if link and result.succeeded:
                _replay_links(report, config, result)
    except UserAborted as e:
        print(f"Aborting deployment! ({e})")
        report.aborted = True
    finally:
        _save(report, config, config_dir)
    return report


def run_upgrade(
    network: str,
    plan: DeploymentPlan,
    contract_name: str,
    transactor,
    get_artifact: Callable[[str], Any],
    proxies,
    config_dir: Path = CONFIG_DIR,
    skip_confirmation: bool = False,
) -> PipelineReport:
    config = load_config(network, config_dir)
    contract_plan = plan[contract_name]
    previous_artifact = None
    if contract_plan.previous_contract_type:
        previous_artifact = get_artifact(contract_plan.previous_contract_type)

    reconciler = UpgradeReconciler(
        config=config,
        transactor=transactor,
        proxies=proxies,
        skip_confirmation=skip_confirmation,
    )
    report = PipelineReport(network=network)
    try:
        result = reconciler.upgrade(
            contract_plan, get_artifact(contract_plan.contract_type), previous_artifact
        )
    except UserAborted as e:
        print(f"Aborting upgrade! ({e})")
        report.aborted = True
        return report
    except DeploymentError as e:
        _record_error(report, contract_name, e)
        print_status("Upgrade", success=False)
        return report

    report.results.append(result)
    if result.succeeded:
        # an upgrade never changes the proxy address, only the implementation
        report.saved = save_config(config, network, config_dir)
    return report


def run_links(
    network: str,
    contract_name: str,
    artifact,
    config_dir: Path = CONFIG_DIR,
    categories: List[str] = None,
) -> PipelineReport:
    """Replays the link lists of an already deployed contract; the config is not written."""
    config = load_config(network, config_dir)
    report = PipelineReport(network=network)

    address = config.get_address(contract_name)
    if not address:
        _record_error(report, contract_name, MissingDependency(contract_name))
        return report

    print_info(f"{contract_name} Address", address)
    contract = artifact.at(address)
    record = config.contracts[contract_name]
    try:
        report.links[contract_name] = LinkReplayer().replay_all(
            contract, record, config, categories=categories
        )
    except UserAborted as e:
        print(f"Aborting link replay! ({e})")
        report.aborted = True
    return report


def raise_for_report(report: PipelineReport) -> None:
    """Turns a failed run into a non-zero exit; an operator abort exits cleanly."""
    failures = report.failures()
    if failures:
        for line in failures:
            print_error(line)
        raise click.ClickException(f"Run against {report.network} had failures.")
    if report.aborted:
        return
    print_status(f"{report.network}", success=True)
