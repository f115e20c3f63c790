import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from xchain_deployment.constants import CONST_ADDRESS_DEPLOYER, CREATE2, DEPLOYMENT_METHODS, PROXY
from xchain_deployment.exceptions import DeploymentConfigError, MissingDependency
from xchain_deployment.registry import NetworkConfig
from xchain_deployment.utils import _load_yaml


class VariableContext:
    """What plan variables resolve against: the network config and the deployer account."""

    def __init__(
        self,
        config: NetworkConfig,
        deployer_address: str,
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
    ):
        self.config = config
        self.deployer_address = deployer_address
        self.contract_name = contract_name
        self.constants = constants or dict()


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, context: VariableContext) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, context: VariableContext) -> Any:
        return context.deployer_address


class Constant(Variable):
    def __init__(self, constant_name: str, constants: typing.Dict[str, Any]):
        if constant_name not in constants:
            raise DeploymentConfigError(f"Constant '{constant_name}' not found in deployment file.")
        self.constant_name = constant_name

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, context: VariableContext) -> Any:
        return context.constants[self.constant_name]


class ContractAddress(Variable):
    """The recorded address of another contract in the network config."""

    def __init__(self, contract_name: str):
        self.contract_name = contract_name

    def resolve(self, context: VariableContext) -> Any:
        address = context.config.get_address(self.contract_name)
        if not address:
            raise MissingDependency(self.contract_name, dependent=context.contract_name)
        return address


def _variable_from_value(variable: str, constants: typing.Dict[str, Any]) -> Variable:
    variable = variable[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Constant.is_constant(variable):
        return Constant(variable, constants)
    else:
        return ContractAddress(variable)


def _process_raw_value(value: Any, constants: typing.Dict[str, Any]) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, constants) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, constants)

    return value


def _process_raw_values(values: Any, constants: typing.Dict[str, Any]) -> OrderedDict:
    """Processes a mapping (or list) of raw parameters into an ordered mapping of values."""
    if values is None:
        return OrderedDict()
    if isinstance(values, list):
        values = OrderedDict((f"arg{i}", v) for i, v in enumerate(values))
    if not isinstance(values, dict):
        raise DeploymentConfigError("Malformed deployment parameters YAML.")

    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, constants)

    return processed_parameters


def _resolve_param(value: Any, context: VariableContext) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, context) for v in value]

    if isinstance(value, Variable):
        return value.resolve(context)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, context: VariableContext) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, context)

    return resolved_parameters


def _contract_references(value: Any) -> List[str]:
    if isinstance(value, list):
        return [name for v in value for name in _contract_references(v)]
    if isinstance(value, ContractAddress):
        return [value.contract_name]
    return []


@dataclass
class ContractCall:
    """A named contract function plus its (unresolved) arguments."""

    function: str
    args: OrderedDict = field(default_factory=OrderedDict)

    @classmethod
    def from_config(cls, data: Any, constants: typing.Dict[str, Any]) -> Optional["ContractCall"]:
        if not data:
            return None
        if isinstance(data, str):
            return cls(function=data)
        if not isinstance(data, dict) or "function" not in data:
            raise DeploymentConfigError(
                "Malformed call in deployment parameters YAML; expected a 'function' field."
            )
        return cls(function=data["function"], args=_process_raw_values(data.get("args"), constants))


@dataclass
class ContractPlan:
    """
    Declarative deployment parameters of a single contract.

    ``name`` is the key of the contract in the network config; ``contract_type`` is the
    artifact it is deployed from (the same by default).
    """

    name: str
    contract_type: str
    method: str = CREATE2
    salt: Optional[str] = None
    factory: str = CONST_ADDRESS_DEPLOYER
    constructor: OrderedDict = field(default_factory=OrderedDict)
    initializer: Optional[ContractCall] = None
    reinitializer: Optional[ContractCall] = None
    previous_contract_type: Optional[str] = None
    verify: OrderedDict = field(default_factory=OrderedDict)
    constants: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_deterministic(self) -> bool:
        return self.method == CREATE2 or (self.method == PROXY and bool(self.salt))

    @property
    def implementation_salt(self) -> Optional[str]:
        """Deployment key of the logic behind a deterministic proxy."""
        if self.method == PROXY and self.salt:
            return f"{self.salt} implementation"
        return None

    def context(self, config: NetworkConfig, deployer_address: str) -> VariableContext:
        return VariableContext(
            config=config,
            deployer_address=deployer_address,
            contract_name=self.name,
            constants=self.constants,
        )

    def dependencies(self) -> List[str]:
        """Names of the contracts that must already be recorded in the network config."""
        values = list(self.constructor.values()) + list(self.verify.values())
        for call in (self.initializer, self.reinitializer):
            if call is not None:
                values.extend(call.args.values())
        dependencies = list()
        if self.is_deterministic:
            dependencies.append(self.factory)
        for name in _contract_references(values):
            if name not in dependencies:
                dependencies.append(name)
        return dependencies

    def check_dependencies(self, config: NetworkConfig) -> None:
        for dependency in self.dependencies():
            if not config.get_address(dependency):
                raise MissingDependency(dependency, dependent=self.name)

    def resolve_constructor(self, context: VariableContext) -> OrderedDict:
        return _resolve_params(self.constructor, context)

    def resolve_call(self, call: Optional[ContractCall], context: VariableContext) -> OrderedDict:
        if call is None:
            return OrderedDict()
        return _resolve_params(call.args, context)

    def resolve_verify(self, context: VariableContext) -> OrderedDict:
        return _resolve_params(self.verify, context)

    @classmethod
    def from_config(
        cls, contract_name: str, contract_data: Dict[str, Any], constants: Dict[str, Any]
    ) -> "ContractPlan":
        contract_data = contract_data or dict()
        method = contract_data.get("method", CREATE2)
        if method not in DEPLOYMENT_METHODS:
            raise DeploymentConfigError(
                f"{contract_name} has unknown method '{method}'; expected one of {DEPLOYMENT_METHODS}"
            )

        salt = contract_data.get("salt")
        if method == CREATE2 and not salt:
            salt = contract_name  # the contract name is the default deployment key

        verify = contract_data.get("verify") or dict()
        if not isinstance(verify, dict):
            raise DeploymentConfigError(f"Malformed 'verify' section for {contract_name}.")

        return cls(
            name=contract_name,
            contract_type=contract_data.get("contract_type", contract_name),
            method=method,
            salt=str(salt) if salt else None,
            factory=contract_data.get("factory", CONST_ADDRESS_DEPLOYER),
            constructor=_process_raw_values(contract_data.get("constructor"), constants),
            initializer=ContractCall.from_config(contract_data.get("initializer"), constants),
            reinitializer=ContractCall.from_config(contract_data.get("reinitializer"), constants),
            previous_contract_type=contract_data.get("previous_contract_type"),
            verify=_process_raw_values(verify, constants),
            constants=constants,
        )


class DeploymentPlan:
    """The ordered contract plans of a deployment parameters file."""

    def __init__(self, contracts: "OrderedDict[str, ContractPlan]", path: Path = None):
        self.contracts = contracts
        self.path = path

    def __iter__(self):
        return iter(self.contracts.values())

    def __getitem__(self, contract_name: str) -> ContractPlan:
        try:
            return self.contracts[contract_name]
        except KeyError:
            raise DeploymentConfigError(f"No deployment parameters for {contract_name}.")

    @classmethod
    def from_config(cls, config: typing.Dict, path: Path = None) -> "DeploymentPlan":
        print("Processing deployment parameters...")
        if not isinstance(config, dict) or not config.get("contracts"):
            raise DeploymentConfigError("Deployment parameters file missing 'contracts' field.")
        constants = config.get("constants") or dict()

        contracts = OrderedDict()
        for contract_info in config["contracts"]:
            if isinstance(contract_info, str):
                contract_name, contract_data = contract_info, dict()
            elif isinstance(contract_info, dict) and len(contract_info) == 1:
                contract_name = list(contract_info.keys())[0]  # only one entry
                contract_data = contract_info[contract_name]
            else:
                raise DeploymentConfigError("Malformed deployment parameters YAML.")

            if contract_name in contracts:
                raise DeploymentConfigError(f"Duplicate deployment parameters for {contract_name}.")
            contracts[contract_name] = ContractPlan.from_config(
                contract_name, contract_data, constants
            )

        return cls(contracts=contracts, path=path)

    @classmethod
    def from_yaml(cls, filepath: Path) -> "DeploymentPlan":
        config = _load_yaml(filepath)
        return cls.from_config(config=config, path=filepath)
