from pathlib import Path

import xchain_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(xchain_deployment.__file__).parent
DEPLOY_PARAMS_DIR = DEPLOYMENT_DIR / "deploy_params"
CONFIG_DIR = DEPLOYMENT_DIR.parent / "config"

# Address book files: 2-space indent and a trailing newline
STANDARD_CONFIG_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}

#
# Deployment methods
#

DIRECT = "direct"
CREATE2 = "create2"
PROXY = "proxy"

DEPLOYMENT_METHODS = [DIRECT, CREATE2, PROXY]

#
# Contracts
#

DONATE = "Donate"
INTERCHAIN_TOKEN_SERVICE = "InterchainTokenService"
CONST_ADDRESS_DEPLOYER = "ConstAddressDeployer"

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "5.0.0"

# EIP1967 Admin slot - https://eips.ethereum.org/EIPS/eip-1967#admin-address
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103

# EIP1967 Logic slot - https://eips.ethereum.org/EIPS/eip-1967#logic-contract-address
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC

# CREATE2 prefix byte - https://eips.ethereum.org/EIPS/eip-1014
CREATE2_PREFIX = b"\xff"

CONST_ADDRESS_DEPLOYER_ABI = [
    {
        "type": "function",
        "name": "deploy",
        "stateMutability": "payable",
        "inputs": [
            {"name": "bytecode", "type": "bytes"},
            {"name": "salt", "type": "bytes32"},
        ],
        "outputs": [{"name": "deployedAddress_", "type": "address"}],
    },
    {
        "type": "function",
        "name": "deployAndInit",
        "stateMutability": "payable",
        "inputs": [
            {"name": "bytecode", "type": "bytes"},
            {"name": "salt", "type": "bytes32"},
            {"name": "init", "type": "bytes"},
        ],
        "outputs": [{"name": "deployedAddress_", "type": "address"}],
    },
    {
        "type": "function",
        "name": "deployedAddress",
        "stateMutability": "view",
        "inputs": [
            {"name": "bytecode", "type": "bytes"},
            {"name": "sender", "type": "address"},
            {"name": "salt", "type": "bytes32"},
        ],
        "outputs": [{"name": "deployedAddress_", "type": "address"}],
    },
    {
        "type": "event",
        "name": "Deployed",
        "anonymous": False,
        "inputs": [
            {"name": "deployedAddress", "type": "address", "indexed": True},
            {"name": "sender", "type": "address", "indexed": True},
            {"name": "salt", "type": "bytes32", "indexed": True},
            {"name": "bytecodeHash", "type": "bytes32", "indexed": False},
        ],
    },
]

#
# Link categories, in replay order
#

KNOWN_CHAINS = "knownChains"
KNOWN_TOKENS = "knownTokens"
KNOWN_CHARITIES = "knownCharities"
KNOWN_CHARITIES_INTERCHAIN = "knownCharitiesInterchain"
ANALYTIC_TOKENS = "analyticTokens"

LINK_CATEGORIES = [
    KNOWN_CHAINS,
    KNOWN_TOKENS,
    KNOWN_CHARITIES,
    KNOWN_CHARITIES_INTERCHAIN,
    ANALYTIC_TOKENS,
]
