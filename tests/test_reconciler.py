import pytest
from eth_utils import is_same_address

from tests.conftest import (
    DEPLOYER,
    DONATE_BYTECODE,
    DONATE_RUNTIME,
    FACTORY_ADDRESS,
    ITS_ADDRESS,
    NETWORK,
    OTHER_ITS_ADDRESS,
    FakeArtifact,
    FakeChain,
    FakeFactory,
    FakeProxyDeployer,
    FakeTransactor,
    network_config_data,
)
from xchain_deployment.constants import CONST_ADDRESS_DEPLOYER, DONATE, INTERCHAIN_TOKEN_SERVICE
from xchain_deployment.create2 import predict_deployed_address
from xchain_deployment.exceptions import (
    AddressMismatch,
    MissingDependency,
    SaltCollision,
    TransactionFailure,
    UserAborted,
    VerificationMismatch,
)
from xchain_deployment.params import ContractPlan
from xchain_deployment.reconciler import DeploymentReconciler, DeploymentState, verify_deployment
from xchain_deployment.registry import NetworkConfig

INITIALIZER = {
    "function": "initialize",
    "args": {"owner": "$deployer", "interchainTokenService": "$InterchainTokenService"},
}
VERIFY = {"interchainTokenService": "$InterchainTokenService"}


def donate_plan(**overrides) -> ContractPlan:
    data = {"method": "create2", "salt": "Donate", "initializer": INITIALIZER, "verify": VERIFY}
    data.update(overrides)
    return ContractPlan.from_config(DONATE, data, constants=dict())


@pytest.fixture
def reconciler(network_config, transactor, factory, proxies):
    return DeploymentReconciler(
        config=network_config,
        transactor=transactor,
        factory_at=lambda address: factory,
        proxies=proxies,
        skip_confirmation=True,
    )


def test_create2_deployment(reconciler, network_config, fake_chain, donate_artifact):
    result = reconciler.reconcile(donate_plan(), donate_artifact)

    assert result.succeeded
    assert result.states == [
        DeploymentState.UNCONFIGURED,
        DeploymentState.PENDING_CONFIRMATION,
        DeploymentState.DEPLOYED,
        DeploymentState.VERIFIED,
    ]

    # a single factory call, initializing in the same transaction
    assert [t[1] for t in fake_chain.transactions] == ["deployAndInit"]
    init_bytecode = fake_chain.transactions[0][2][0]
    expected = predict_deployed_address(FACTORY_ADDRESS, DEPLOYER, init_bytecode, "Donate")
    assert result.contract.address == expected
    assert fake_chain.code[expected] == DONATE_RUNTIME

    record = network_config.contracts[DONATE]
    assert record.address == expected
    assert record.deployer == DEPLOYER
    assert record.deployment_method == "create2"
    assert record.salt == "Donate"
    assert record.implementation is None


def test_create2_without_initializer(reconciler, fake_chain, donate_artifact):
    result = reconciler.reconcile(donate_plan(initializer=None, verify={}), donate_artifact)
    assert result.succeeded
    assert [t[1] for t in fake_chain.transactions] == ["deploy"]


def test_deploy_then_attach(reconciler, network_config, fake_chain, donate_artifact):
    first = reconciler.reconcile(donate_plan(), donate_artifact)
    transactions = len(fake_chain.transactions)

    second = reconciler.reconcile(donate_plan(), donate_artifact)
    assert second.succeeded
    assert second.attached
    assert not second.deployed
    assert second.contract.address == first.contract.address
    assert len(fake_chain.transactions) == transactions


def test_attach_keeps_record_untouched(network_config, transactor, factory, donate_artifact):
    fake_chain = transactor.chain
    address = fake_chain.new_address()
    fake_chain.install(address, donate_artifact)
    fake_chain.state[address]["interchainTokenService"] = ITS_ADDRESS
    config = NetworkConfig.from_dict(
        NETWORK,
        network_config_data(
            address=address, deployer=DEPLOYER, deploymentMethod="direct", notes="legacy"
        ),
    )
    before = config.to_dict()

    reconciler = DeploymentReconciler(config, transactor, lambda a: factory, skip_confirmation=True)
    result = reconciler.reconcile(donate_plan(), donate_artifact)

    assert result.states == [
        DeploymentState.UNCONFIGURED,
        DeploymentState.ATTACHED,
        DeploymentState.VERIFIED,
    ]
    assert config.to_dict() == before
    assert fake_chain.transactions == []


def test_verification_mismatch(transactor, factory, donate_artifact):
    fake_chain = transactor.chain
    address = fake_chain.new_address()
    fake_chain.install(address, donate_artifact)
    fake_chain.state[address]["interchainTokenService"] = OTHER_ITS_ADDRESS
    config = NetworkConfig.from_dict(
        NETWORK, network_config_data(address=address, deployer=DEPLOYER, deploymentMethod="direct")
    )
    before = config.to_dict()

    reconciler = DeploymentReconciler(config, transactor, lambda a: factory, skip_confirmation=True)
    result = reconciler.reconcile(donate_plan(), donate_artifact)

    assert result.state == DeploymentState.FAILED
    assert len(result.mismatches) == 1
    mismatch = result.mismatches[0]
    assert mismatch.field == "interchainTokenService"
    assert mismatch.expected == ITS_ADDRESS
    assert mismatch.actual == OTHER_ITS_ADDRESS
    assert config.to_dict() == before

    with pytest.raises(VerificationMismatch, match="interchainTokenService"):
        result.raise_for_status()


def test_failed_verification_does_not_record_deployment(
    reconciler, network_config, fake_chain, donate_artifact
):
    # initialized with another ITS than the one in the address book
    plan = donate_plan(
        initializer={"function": "initialize", "args": ["$deployer", OTHER_ITS_ADDRESS]}
    )
    result = reconciler.reconcile(plan, donate_artifact)

    assert result.deployed
    assert result.state == DeploymentState.FAILED
    assert not network_config.get_record(DONATE).is_deployed


def test_verification_compares_addresses_case_insensitively(donate_artifact, fake_chain):
    address = fake_chain.new_address()
    fake_chain.install(address, donate_artifact)
    fake_chain.state[address]["interchainTokenService"] = ITS_ADDRESS.lower()
    contract = donate_artifact.at(address)

    assert verify_deployment(contract, {"interchainTokenService": ITS_ADDRESS}) == []
    assert verify_deployment(contract, {"interchainTokenService": OTHER_ITS_ADDRESS})


def test_missing_dependency(transactor, factory, fake_chain, donate_artifact):
    data = network_config_data()
    del data["contracts"][INTERCHAIN_TOKEN_SERVICE]
    config = NetworkConfig.from_dict(NETWORK, data)

    reconciler = DeploymentReconciler(config, transactor, lambda a: factory, skip_confirmation=True)
    with pytest.raises(MissingDependency, match="InterchainTokenService contract not deployed yet"):
        reconciler.reconcile(donate_plan(), donate_artifact)
    assert fake_chain.transactions == []


def test_missing_factory(transactor, factory, fake_chain, donate_artifact):
    data = network_config_data()
    del data["contracts"][CONST_ADDRESS_DEPLOYER]
    config = NetworkConfig.from_dict(NETWORK, data)

    reconciler = DeploymentReconciler(config, transactor, lambda a: factory, skip_confirmation=True)
    with pytest.raises(MissingDependency):
        reconciler.reconcile(donate_plan(), donate_artifact)

    # the factory is only needed for deterministic deployments
    result = reconciler.reconcile(donate_plan(method="direct", salt=None), donate_artifact)
    assert result.succeeded
    assert [t[1] for t in fake_chain.transactions] == ["deploy", "initialize"]


def test_declined_confirmation(
    network_config, transactor, factory, fake_chain, donate_artifact, refuse_prompts
):
    before = network_config.to_dict()
    reconciler = DeploymentReconciler(network_config, transactor, lambda a: factory)

    with pytest.raises(UserAborted):
        reconciler.reconcile(donate_plan(), donate_artifact)
    assert len(refuse_prompts) == 1
    assert fake_chain.transactions == []
    assert network_config.to_dict() == before


def test_salt_collision(reconciler, network_config, fake_chain, donate_artifact):
    first = reconciler.reconcile(donate_plan(), donate_artifact)
    # forget the deployment; the same key and bytecode now collide
    del network_config.contracts[DONATE]
    transactions = len(fake_chain.transactions)

    with pytest.raises(SaltCollision) as error:
        reconciler.reconcile(donate_plan(), donate_artifact)
    assert error.value.expected == first.contract.address
    assert isinstance(error.value, AddressMismatch)
    assert len(fake_chain.transactions) == transactions


def test_factory_address_mismatch(reconciler, network_config, factory, donate_artifact):
    factory.misreport = OTHER_ITS_ADDRESS
    with pytest.raises(AddressMismatch) as error:
        reconciler.reconcile(donate_plan(), donate_artifact)
    assert error.value.actual == OTHER_ITS_ADDRESS
    assert not network_config.get_record(DONATE).is_deployed


def test_proxy_deployment(reconciler, network_config, fake_chain, proxies, donate_artifact):
    result = reconciler.reconcile(donate_plan(method="proxy"), donate_artifact)
    assert result.succeeded

    record = network_config.contracts[DONATE]
    assert record.deployment_method == "proxy"
    assert record.salt == "Donate"
    assert record.implementation == result.implementation
    assert is_same_address(proxies.implementation(record.address), record.implementation)
    # logic, then the proxy, both through the factory
    assert [t[:2] for t in fake_chain.transactions] == [
        (FACTORY_ADDRESS, "deploy"),
        (FACTORY_ADDRESS, "deploy"),
    ]
    logic_bytecode = fake_chain.transactions[0][2][0]
    assert record.implementation == predict_deployed_address(
        FACTORY_ADDRESS, DEPLOYER, logic_bytecode, "Donate implementation"
    )


def test_proxy_address_does_not_depend_on_nonce(donate_artifact):
    addresses = list()
    for earlier_deployments in (0, 3):
        fake_chain = FakeChain()
        transactor = FakeTransactor(fake_chain)
        factory = FakeFactory(fake_chain, FACTORY_ADDRESS, transactor)
        artifact = FakeArtifact(fake_chain, DONATE, DONATE_BYTECODE, DONATE_RUNTIME)
        for _ in range(earlier_deployments):
            transactor.deploy(artifact)

        config = NetworkConfig.from_dict(NETWORK, network_config_data())
        reconciler = DeploymentReconciler(
            config,
            transactor,
            lambda a: factory,
            proxies=FakeProxyDeployer(fake_chain, transactor),
            skip_confirmation=True,
        )
        assert reconciler.reconcile(donate_plan(method="proxy"), artifact).succeeded
        record = config.contracts[DONATE]
        addresses.append((record.address, record.implementation))

    assert addresses[0] == addresses[1]


def test_proxy_reuses_existing_logic(reconciler, network_config, fake_chain, donate_artifact):
    logic = predict_deployed_address(
        FACTORY_ADDRESS, DEPLOYER, donate_artifact.init_bytecode(), "Donate implementation"
    )
    fake_chain.install(logic, donate_artifact)

    result = reconciler.reconcile(donate_plan(method="proxy"), donate_artifact)

    assert result.succeeded
    assert network_config.contracts[DONATE].implementation == logic
    # only the proxy is deployed
    assert [t[1] for t in fake_chain.transactions] == ["deploy"]
    assert fake_chain.transactions[0][2][0].startswith(b"proxy")


def test_proxy_deployment_without_salt(reconciler, network_config, fake_chain, donate_artifact):
    result = reconciler.reconcile(donate_plan(method="proxy", salt=None), donate_artifact)
    assert result.succeeded

    record = network_config.contracts[DONATE]
    assert record.salt is None
    assert fake_chain.transactions[1][2] == ("TransparentUpgradeableProxy", record.implementation)


def test_uninitialized_proxy(reconciler, network_config, proxies, donate_artifact):
    proxies.broken = True
    with pytest.raises(TransactionFailure, match="reports implementation None"):
        reconciler.reconcile(donate_plan(method="proxy"), donate_artifact)
    assert not network_config.get_record(DONATE).is_deployed


def test_link_lists_survive_deployment(transactor, factory, donate_artifact):
    chains = {"Polygon": "0x" + "22" * 20}
    config = NetworkConfig.from_dict(NETWORK, network_config_data(knownChains=chains))
    reconciler = DeploymentReconciler(config, transactor, lambda a: factory, skip_confirmation=True)

    assert reconciler.reconcile(donate_plan(), donate_artifact).succeeded
    assert config.contracts[DONATE].known_chains == chains
