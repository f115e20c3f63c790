from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from ape.exceptions import ApeException
from eth_utils import is_address, is_same_address, keccak
from hexbytes import HexBytes

from xchain_deployment.constants import (
    ANALYTIC_TOKENS,
    KNOWN_CHAINS,
    KNOWN_CHARITIES,
    KNOWN_CHARITIES_INTERCHAIN,
    KNOWN_TOKENS,
    LINK_CATEGORIES,
)
from xchain_deployment.exceptions import DeploymentConfigError, TransactionFailure
from xchain_deployment.registry import ContractRecord, NetworkConfig
from xchain_deployment.utils import print_error, print_info, print_status


class LinkEntry(NamedTuple):
    """A single declarative link awaiting replay."""

    category: str
    name: str
    target: Any
    args: Tuple


def _is_known_charity(contract, entry: LinkEntry) -> bool:
    current = contract.call("knownCharities", keccak(text=entry.name))
    return is_same_address(current, entry.target)


def _is_analytics_token(contract, entry: LinkEntry) -> bool:
    return bool(contract.call("analyticsTokens", entry.target))


@dataclass(frozen=True)
class LinkCall:
    function: str
    label: str
    is_known: Optional[Callable[[Any, LinkEntry], bool]] = None


LINK_CALLS = {
    KNOWN_CHAINS: LinkCall(function="addKnownChain", label="chain"),
    KNOWN_TOKENS: LinkCall(function="addKnownToken", label="token"),
    KNOWN_CHARITIES: LinkCall(
        function="addKnownCharity", label="charity", is_known=_is_known_charity
    ),
    KNOWN_CHARITIES_INTERCHAIN: LinkCall(
        function="addKnownCharityInterchain", label="interchain charity"
    ),
    ANALYTIC_TOKENS: LinkCall(
        function="addAnalyticsToken", label="analytics token", is_known=_is_analytics_token
    ),
}


def _token_id(symbol: str, token_id: str, config: NetworkConfig) -> bytes:
    if not token_id:
        token = config.tokens.get(symbol)
        if token is None:
            raise DeploymentConfigError(f"No tokenId configured for token {symbol}.")
        token_id = token.token_id
    try:
        value = bytes(HexBytes(token_id))
    except (TypeError, ValueError):
        raise DeploymentConfigError(f"Token {symbol} has malformed tokenId '{token_id}'.")
    if len(value) != 32:
        raise DeploymentConfigError(f"Token {symbol} tokenId must be 32 bytes, got {len(value)}.")
    return value


def _checked_address(category: str, name: str, address: Any) -> str:
    if not isinstance(address, str) or not is_address(address):
        raise DeploymentConfigError(f"{category} entry '{name}' has malformed address '{address}'.")
    return address


def link_entries(record: ContractRecord, config: NetworkConfig, category: str) -> List[LinkEntry]:
    """The entries of one link category of a record, in configuration order."""
    entries = list()
    if category == KNOWN_CHAINS:
        for name, address in record.known_chains.items():
            entries.append(LinkEntry(category, name, address, (name, address)))

    elif category == KNOWN_TOKENS:
        for symbol, token_id in record.known_tokens.items():
            value = _token_id(symbol, token_id, config)
            entries.append(LinkEntry(category, symbol, "0x" + value.hex(), (value, symbol)))

    elif category == KNOWN_CHARITIES:
        for name, address in record.known_charities.items():
            address = _checked_address(category, name, address)
            entries.append(LinkEntry(category, name, address, (name, address)))

    elif category == KNOWN_CHARITIES_INTERCHAIN:
        for name, charity in record.known_charities_interchain.items():
            try:
                destination, address = charity["destinationChain"], charity["charityAddress"]
            except (KeyError, TypeError):
                raise DeploymentConfigError(
                    f"Interchain charity '{name}' needs destinationChain and charityAddress."
                )
            address = _checked_address(category, name, address)
            target = f"{destination}:{address}"
            entries.append(LinkEntry(category, name, target, (name, destination, address)))

    elif category == ANALYTIC_TOKENS:
        # treated as a set
        for address in OrderedDict.fromkeys(record.analytic_tokens):
            _checked_address(category, address, address)
            entries.append(LinkEntry(category, address, address, (address,)))

    else:
        raise DeploymentConfigError(f"Unknown link category '{category}'.")
    return entries


@dataclass
class LinkReport:
    receipts: Dict[str, list] = field(default_factory=OrderedDict)
    failures: Dict[str, Exception] = field(default_factory=OrderedDict)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class LinkReplayer:
    """
    Replays declarative link entries against a live contract, one confirmed
    transaction at a time. Entries the contract already knows about are skipped
    where the contract exposes a lookup for them.
    """

    def __init__(self, check_live_state: bool = True):
        self.check_live_state = check_live_state

    def replay(self, contract, entries: List[LinkEntry]) -> list:
        receipts = list()
        for entry in entries:
            link = LINK_CALLS[entry.category]
            try:
                if self.check_live_state and link.is_known and link.is_known(contract, entry):
                    print_info(f"Skipping known {link.label} {entry.name}", entry.target)
                    continue

                print_info(f"Adding {link.label} {entry.name}", entry.target)
                receipt = contract.send(link.function, *entry.args)
            except (TransactionFailure, ApeException, ValueError) as e:
                raise TransactionFailure(
                    f"Adding {link.label} '{entry.name}' failed: {e}",
                    entry=entry,
                    receipts=receipts,
                ) from e
            receipts.append(receipt)
        return receipts

    def replay_all(
        self,
        contract,
        record: ContractRecord,
        config: NetworkConfig,
        categories: List[str] = None,
    ) -> LinkReport:
        """Replays every category; a failed category does not stop the others."""
        report = LinkReport()
        for category in categories or LINK_CATEGORIES:
            try:
                entries = link_entries(record, config, category)
                if not entries:
                    continue
                report.receipts[category] = self.replay(contract, entries)
            except (DeploymentConfigError, TransactionFailure) as e:
                print_error(f"ERROR: {category}", str(e))
                report.failures[category] = e
                if isinstance(e, TransactionFailure):
                    report.receipts[category] = e.receipts
            print_status(f"Linking {category}", success=category not in report.failures)
        return report
