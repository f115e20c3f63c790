import json
import os
import stat
import tempfile
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from xchain_deployment.constants import (
    ANALYTIC_TOKENS,
    CONFIG_DIR,
    CREATE2,
    DEPLOYMENT_METHODS,
    KNOWN_CHAINS,
    KNOWN_CHARITIES,
    KNOWN_CHARITIES_INTERCHAIN,
    KNOWN_TOKENS,
    STANDARD_CONFIG_JSON_FORMAT,
)
from xchain_deployment.exceptions import DeploymentConfigError
from xchain_deployment.utils import _load_json

ContractName = str
NetworkName = str

# permissions of a newly written address book
CONFIG_FILE_MODE = 0o644

# ContractRecord keys managed by the orchestrator; anything else is carried through untouched
_RECORD_KEYS = (
    "address",
    "deployer",
    "deploymentMethod",
    "salt",
    "implementation",
    KNOWN_CHAINS,
    KNOWN_TOKENS,
    KNOWN_CHARITIES,
    KNOWN_CHARITIES_INTERCHAIN,
    ANALYTIC_TOKENS,
)


@dataclass
class TokenRecord:
    """A token known on a network, by symbol."""

    address: ChecksumAddress
    token_id: str
    decimals: int = 18

    @classmethod
    def from_dict(cls, symbol: str, data: Dict[str, Any]) -> "TokenRecord":
        try:
            return cls(
                address=data["address"],
                token_id=data["tokenId"],
                decimals=int(data.get("decimals", 18)),
            )
        except KeyError as e:
            raise DeploymentConfigError(f"Token '{symbol}' is missing field {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "tokenId": self.token_id, "decimals": self.decimals}


@dataclass
class ContractRecord:
    """
    Persisted deployment state and declarative link lists of a single contract.

    Invariants: a recorded address implies a recorded deployer and deployment method,
    and a create2 deployment always records its (non-empty) salt key.
    """

    address: Optional[ChecksumAddress] = None
    deployer: Optional[ChecksumAddress] = None
    deployment_method: Optional[str] = None
    salt: Optional[str] = None
    implementation: Optional[ChecksumAddress] = None
    known_chains: Dict[str, str] = field(default_factory=OrderedDict)
    known_tokens: Dict[str, str] = field(default_factory=OrderedDict)
    known_charities: Dict[str, str] = field(default_factory=OrderedDict)
    known_charities_interchain: Dict[str, Dict[str, str]] = field(default_factory=OrderedDict)
    analytic_tokens: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=OrderedDict)

    @classmethod
    def from_dict(cls, name: ContractName, data: Dict[str, Any]) -> "ContractRecord":
        if not isinstance(data, dict):
            raise DeploymentConfigError(f"Malformed config entry for contract {name}.")
        record = cls(
            address=data.get("address"),
            deployer=data.get("deployer"),
            deployment_method=data.get("deploymentMethod"),
            salt=data.get("salt"),
            implementation=data.get("implementation"),
            known_chains=OrderedDict(data.get(KNOWN_CHAINS) or {}),
            known_tokens=OrderedDict(data.get(KNOWN_TOKENS) or {}),
            known_charities=OrderedDict(data.get(KNOWN_CHARITIES) or {}),
            known_charities_interchain=OrderedDict(data.get(KNOWN_CHARITIES_INTERCHAIN) or {}),
            analytic_tokens=list(data.get(ANALYTIC_TOKENS) or []),
            extra=OrderedDict((k, v) for k, v in data.items() if k not in _RECORD_KEYS),
        )
        record.validate(name)
        return record

    def to_dict(self) -> Dict[str, Any]:
        data = OrderedDict()
        optional_fields = (
            ("address", self.address),
            ("deployer", self.deployer),
            ("deploymentMethod", self.deployment_method),
            ("salt", self.salt),
            ("implementation", self.implementation),
        )
        for key, value in optional_fields:
            if value is not None:
                data[key] = value

        link_fields = (
            (KNOWN_CHAINS, self.known_chains),
            (KNOWN_TOKENS, self.known_tokens),
            (KNOWN_CHARITIES, self.known_charities),
            (KNOWN_CHARITIES_INTERCHAIN, self.known_charities_interchain),
            (ANALYTIC_TOKENS, self.analytic_tokens),
        )
        for key, value in link_fields:
            if value:
                data[key] = value

        data.update(self.extra)
        return data

    @property
    def is_deployed(self) -> bool:
        return bool(self.address)

    def validate(self, name: ContractName) -> None:
        """Checks the record invariants; raises DeploymentConfigError on violation."""
        if self.deployment_method is not None and self.deployment_method not in DEPLOYMENT_METHODS:
            raise DeploymentConfigError(
                f"{name} has unknown deploymentMethod '{self.deployment_method}'; "
                f"expected one of {DEPLOYMENT_METHODS}"
            )
        if self.address:
            if not is_address(self.address):
                raise DeploymentConfigError(f"{name} address '{self.address}' is not valid")
            if not self.deployer or not self.deployment_method:
                raise DeploymentConfigError(
                    f"{name} has an address but no deployer or deploymentMethod recorded"
                )
        if self.deployment_method == CREATE2 and not self.salt:
            raise DeploymentConfigError(f"{name} was deployed with create2 but has no salt")


@dataclass
class NetworkConfig:
    """The address book of a single network: contracts, tokens and anything else stored there."""

    name: NetworkName
    contracts: Dict[ContractName, ContractRecord] = field(default_factory=OrderedDict)
    tokens: Dict[str, TokenRecord] = field(default_factory=OrderedDict)
    extra: Dict[str, Any] = field(default_factory=OrderedDict)

    @classmethod
    def from_dict(cls, name: NetworkName, data: Dict[str, Any]) -> "NetworkConfig":
        contracts = OrderedDict()
        for contract_name, contract_data in (data.get("contracts") or {}).items():
            contracts[contract_name] = ContractRecord.from_dict(contract_name, contract_data)

        tokens = OrderedDict()
        for symbol, token_data in (data.get("tokens") or {}).items():
            tokens[symbol] = TokenRecord.from_dict(symbol, token_data)

        extra = OrderedDict((k, v) for k, v in data.items() if k not in ("contracts", "tokens"))
        return cls(name=name, contracts=contracts, tokens=tokens, extra=extra)

    def to_dict(self) -> Dict[str, Any]:
        data = OrderedDict(self.extra)
        data["contracts"] = OrderedDict(
            (name, record.to_dict()) for name, record in self.contracts.items()
        )
        if self.tokens:
            data["tokens"] = OrderedDict(
                (symbol, token.to_dict()) for symbol, token in self.tokens.items()
            )
        return data

    def get_record(self, contract_name: ContractName) -> ContractRecord:
        """Returns the record of contract_name, or an empty record if it is unknown."""
        return self.contracts.get(contract_name) or ContractRecord()

    def get_address(self, contract_name: ContractName) -> Optional[ChecksumAddress]:
        record = self.contracts.get(contract_name)
        if record is None or not record.address:
            return None
        return to_checksum_address(record.address)

    def validate(self) -> None:
        for contract_name, record in self.contracts.items():
            record.validate(contract_name)


def config_filepath(network: NetworkName, config_dir: Path = CONFIG_DIR) -> Path:
    return Path(config_dir) / f"{network}.json"


def load_config(network: NetworkName, config_dir: Path = CONFIG_DIR) -> NetworkConfig:
    """
    Loads the address book of a network. A missing file yields an empty config,
    which is only written to disk by save_config.
    """
    filepath = config_filepath(network, config_dir)
    if not filepath.exists():
        print(f"No config found at {filepath}; starting from an empty config.")
        return NetworkConfig(name=network)

    try:
        data = _load_json(filepath)
    except json.JSONDecodeError as e:
        raise DeploymentConfigError(f"Config at {filepath} is not valid JSON: {e}")
    return NetworkConfig.from_dict(name=network, data=data)


def save_config(config: NetworkConfig, network: NetworkName, config_dir: Path = CONFIG_DIR) -> Path:
    """Writes the address book of a network, replacing the previous file atomically."""
    config.validate()
    filepath = config_filepath(network, config_dir)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    mode = CONFIG_FILE_MODE
    if filepath.exists():
        mode = stat.S_IMODE(filepath.stat().st_mode)

    fd, temp_filepath = tempfile.mkstemp(
        dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w") as file:
            json.dump(config.to_dict(), file, **STANDARD_CONFIG_JSON_FORMAT)
            file.write("\n")
        # mkstemp creates owner-only files
        os.chmod(temp_filepath, mode)
        os.replace(temp_filepath, filepath)
    except BaseException:
        Path(temp_filepath).unlink(missing_ok=True)
        raise

    print(f"(i) Config written to {filepath}!")
    return filepath
