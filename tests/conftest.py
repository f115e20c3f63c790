from collections import OrderedDict
from itertools import count

import pytest
from eth_utils import keccak, to_checksum_address

from xchain_deployment.constants import CONST_ADDRESS_DEPLOYER, DONATE, INTERCHAIN_TOKEN_SERVICE
from xchain_deployment.create2 import get_create2_address, get_deployer_salt
from xchain_deployment.exceptions import ProxyImportError, TransactionFailure
from xchain_deployment.registry import NetworkConfig

# Common constants
NETWORK = "avalanche-fuji"
DEPLOYER = to_checksum_address("0x" + "d0" * 20)
FACTORY_ADDRESS = to_checksum_address("0x98b2920d53612483f91f12ed7754e51b4a77919e")
ITS_ADDRESS = to_checksum_address("0x" + "17" * 20)
OTHER_ITS_ADDRESS = to_checksum_address("0x" + "18" * 20)
TOKEN_ID = "0x" + "00" * 31 + "01"

DONATE_BYTECODE = bytes.fromhex("6080604052") + b"donate"
DONATE_RUNTIME = bytes.fromhex("60806040") + b"donate-runtime"
DONATE_V2_RUNTIME = bytes.fromhex("60806040") + b"donate-v2-runtime"
PROXY_RUNTIME = bytes.fromhex("60806040") + b"transparent-proxy"


def fake_address(seed) -> str:
    return to_checksum_address(keccak(text=f"fake-address-{seed}")[-20:])


# Donate behaviour: state changes of the state-changing functions the tooling calls
def _donate_apply(state: dict, function: str, args: tuple) -> None:
    if function == "initialize":
        state["owner"], state["interchainTokenService"] = args
    elif function == "reinitialize":
        state["interchainTokenService"] = args[0]
    elif function == "addKnownChain":
        state.setdefault("knownChainsAdded", OrderedDict())[args[0]] = args[1]
    elif function == "addKnownToken":
        state.setdefault("knownTokensAdded", OrderedDict())[args[1]] = args[0]
    elif function == "addKnownCharity":
        state.setdefault("knownCharities", dict())[keccak(text=args[0])] = args[1]
    elif function == "addKnownCharityInterchain":
        state.setdefault("knownCharitiesInterchainAdded", OrderedDict())[args[0]] = args[1:]
    elif function == "addAnalyticsToken":
        state.setdefault("analyticsTokens", dict())[args[0]] = True


class FakeChain:
    """In-memory stand-in for the network: code, per-contract state and a transaction log."""

    def __init__(self):
        self.code = dict()
        self.state = dict()
        self.artifacts = dict()
        self.implementations = dict()
        self.creations = dict()
        self.encoded_calls = dict()
        self.transactions = list()
        self.imported = list()
        self.failing = set()
        self._addresses = count()

    def new_address(self) -> str:
        return fake_address(next(self._addresses))

    def install(self, address: str, artifact, runtime: bytes = None) -> None:
        self.code[address] = artifact.runtime_bytecode if runtime is None else runtime
        self.state.setdefault(address, dict())
        self.artifacts[address] = artifact

    def apply_encoded(self, address: str, data: bytes) -> None:
        if data:
            function, args = self.encoded_calls[bytes(data)]
            self.artifacts[address].apply(self.state[address], function, args)

    def record(self, address: str, function: str, args: tuple) -> dict:
        if (function, args[0] if args else None) in self.failing or function in self.failing:
            raise TransactionFailure(f"{function}{args} reverted")
        self.transactions.append((address, function, args))
        return {"txn_hash": "0x%064x" % len(self.transactions), "function": function}

    def sent(self, function: str = None) -> list:
        return [t for t in self.transactions if function is None or t[1] == function]


class FakeContract:
    def __init__(self, chain: FakeChain, address: str, artifact):
        self.chain = chain
        self.address = address
        self.artifact = artifact

    @property
    def state(self) -> dict:
        return self.chain.state.setdefault(self.address, dict())

    def call(self, function: str, *args):
        value = self.state.get(function)
        if isinstance(value, dict):
            return value.get(args[0], self.artifact.defaults.get(function))
        if value is None:
            return self.artifact.defaults.get(function)
        return value

    def send(self, function: str, *args):
        receipt = self.chain.record(self.address, function, args)
        self.artifact.apply(self.state, function, args)
        return receipt

    def deployed_code(self) -> bytes:
        return self.chain.code.get(self.address, b"")


class FakeArtifact:
    def __init__(self, chain: FakeChain, name: str, bytecode: bytes, runtime_bytecode: bytes):
        self.chain = chain
        self.name = name
        self.bytecode = bytecode
        self.runtime_bytecode = runtime_bytecode
        self.defaults = {
            "interchainTokenService": "0x" + "00" * 20,
            "knownCharities": "0x" + "00" * 20,
            "analyticsTokens": False,
        }

    def apply(self, state: dict, function: str, args: tuple) -> None:
        _donate_apply(state, function, args)

    def init_bytecode(self, *args) -> bytes:
        init_bytecode = self.bytecode + "".join(str(a) for a in args).encode()
        self.chain.creations[init_bytecode] = lambda address: self.chain.install(address, self)
        return init_bytecode

    def encode_call(self, function: str, *args) -> bytes:
        data = keccak(text=function)[:4] + "".join(str(a) for a in args).encode()
        self.chain.encoded_calls[data] = (function, args)
        return data

    def at(self, address: str) -> FakeContract:
        return FakeContract(self.chain, address, self)


class FakeTransactor:
    def __init__(self, chain: FakeChain, address: str = DEPLOYER):
        self.chain = chain
        self.address = address

    def deploy(self, artifact, *args) -> FakeContract:
        address = self.chain.new_address()
        self.chain.transactions.append((None, "deploy", (artifact.name,) + args))
        self.chain.install(address, artifact)
        return artifact.at(address)

    def get_code(self, address: str) -> bytes:
        return self.chain.code.get(address, b"")


class FakeFactory:
    """A constant address deployer; misreport makes deployedAddress lie."""

    def __init__(self, chain: FakeChain, address: str, transactor: FakeTransactor):
        self.chain = chain
        self.address = address
        self.transactor = transactor
        self.misreport = None

    def _target(self, bytecode: bytes, sender: str, salt: bytes) -> str:
        return get_create2_address(self.address, get_deployer_salt(sender, salt), bytecode)

    def call(self, function: str, *args):
        assert function == "deployedAddress"
        return self.misreport or self._target(*args)

    def send(self, function: str, *args):
        receipt = self.chain.record(self.address, function, args)
        bytecode, salt = args[0], args[1]
        address = self._target(bytecode, self.transactor.address, salt)
        self.chain.creations[bytes(bytecode)](address)
        if function == "deployAndInit":
            self.chain.apply_encoded(address, args[2])
        return receipt


class FakeProxyDeployer:
    def __init__(self, chain: FakeChain, transactor: FakeTransactor):
        self.chain = chain
        self.transactor = transactor
        self.broken = False

    def _install(self, address: str, logic: str, data: bytes) -> None:
        self.chain.install(address, self.chain.artifacts[logic], runtime=PROXY_RUNTIME)
        if not self.broken:
            self.chain.implementations[address] = logic
        self.chain.apply_encoded(address, data)

    def init_bytecode(self, logic: str, owner: str, data: bytes) -> bytes:
        init_bytecode = b"proxy" + logic.encode() + owner.encode() + bytes(data)
        self.chain.creations[init_bytecode] = lambda address: self._install(address, logic, data)
        return init_bytecode

    def deploy(self, logic: str, owner: str, data: bytes) -> FakeContract:
        address = self.chain.new_address()
        self.chain.transactions.append((None, "deploy", ("TransparentUpgradeableProxy", logic)))
        self._install(address, logic, data)
        return FakeContract(self.chain, address, self.chain.artifacts[logic])

    def implementation(self, proxy_address: str):
        return self.chain.implementations.get(proxy_address)

    def import_proxy(self, proxy_address: str, old_artifact) -> str:
        implementation = self.implementation(proxy_address)
        if self.chain.code.get(implementation) != old_artifact.runtime_bytecode:
            raise ProxyImportError(f"{implementation} does not match {old_artifact.name}")
        self.chain.imported.append((proxy_address, implementation))
        return implementation

    def upgrade(self, proxy_address: str, logic: str, data: bytes):
        receipt = self.chain.record(proxy_address, "upgradeAndCall", (proxy_address, logic, data))
        self.chain.implementations[proxy_address] = logic
        self.chain.artifacts[proxy_address] = self.chain.artifacts[logic]
        self.chain.apply_encoded(proxy_address, data)
        return receipt


def network_config_data(**donate) -> dict:
    """Address book with the prerequisite contracts deployed and a Donate entry."""
    return {
        "chainId": 43113,
        "contracts": {
            CONST_ADDRESS_DEPLOYER: {
                "address": FACTORY_ADDRESS,
                "deployer": DEPLOYER,
                "deploymentMethod": "direct",
            },
            INTERCHAIN_TOKEN_SERVICE: {
                "address": ITS_ADDRESS,
                "deployer": DEPLOYER,
                "deploymentMethod": "create2",
                "salt": "ITS v1",
            },
            DONATE: dict(donate),
        },
        "tokens": {"aUSDC": {"address": fake_address("aUSDC"), "tokenId": TOKEN_ID, "decimals": 6}},
    }


# Fixtures
@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def transactor(fake_chain):
    return FakeTransactor(fake_chain)


@pytest.fixture
def donate_artifact(fake_chain):
    return FakeArtifact(fake_chain, DONATE, DONATE_BYTECODE, DONATE_RUNTIME)


@pytest.fixture
def donate_v2_artifact(fake_chain):
    return FakeArtifact(fake_chain, "DonateV2", DONATE_BYTECODE + b"-v2", DONATE_V2_RUNTIME)


@pytest.fixture
def factory(fake_chain, transactor):
    return FakeFactory(fake_chain, FACTORY_ADDRESS, transactor)


@pytest.fixture
def proxies(fake_chain, transactor):
    return FakeProxyDeployer(fake_chain, transactor)


@pytest.fixture
def network_config():
    return NetworkConfig.from_dict(NETWORK, network_config_data())


@pytest.fixture
def refuse_prompts(monkeypatch):
    """Answers 'n' to every confirmation prompt."""
    prompts = list()

    def _input(question):
        prompts.append(question)
        return "n"

    monkeypatch.setattr("builtins.input", _input)
    return prompts
