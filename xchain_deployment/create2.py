from eth_abi import encode
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_bytes, to_canonical_address, to_checksum_address

from xchain_deployment.constants import CREATE2_PREFIX


def get_salt_from_key(key: str) -> bytes:
    """
    Derives the 32-byte deployment salt for a logical deployment key.

    The key is ABI-encoded as a single string before hashing, so it must be used
    unchanged both when predicting an address and when deploying.
    """
    if not key:
        raise ValueError("Deployment salt key cannot be empty")
    return keccak(encode(["string"], [str(key)]))


def get_create2_address(deployer_address: str, salt: bytes, init_bytecode) -> ChecksumAddress:
    """Returns the EIP-1014 address of init_bytecode deployed by deployer_address with salt."""
    salt = to_bytes(hexstr=salt) if isinstance(salt, str) else bytes(salt)
    if len(salt) != 32:
        raise ValueError(f"CREATE2 salt must be 32 bytes, got {len(salt)}")

    init_bytecode = (
        to_bytes(hexstr=init_bytecode) if isinstance(init_bytecode, str) else bytes(init_bytecode)
    )
    preimage = CREATE2_PREFIX + to_canonical_address(deployer_address) + salt + keccak(init_bytecode)
    return to_checksum_address(keccak(preimage)[12:])


def get_deployer_salt(sender: str, salt: bytes) -> bytes:
    """
    The constant address deployer namespaces every salt by its sender:
    the salt used for CREATE2 is keccak256(abi.encode(sender, salt)).
    """
    return keccak(encode(["address", "bytes32"], [to_checksum_address(sender), bytes(salt)]))


def predict_deployed_address(
    factory_address: str, sender: str, init_bytecode, key: str
) -> ChecksumAddress:
    """
    Predicts the address the factory at factory_address will deploy init_bytecode to
    when called by sender with the salt derived from key.
    """
    salt = get_salt_from_key(key)
    deployer_salt = get_deployer_salt(sender=sender, salt=salt)
    return get_create2_address(factory_address, deployer_salt, init_bytecode)
