"""Exceptions raised while deploying, upgrading and linking contracts."""


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""


class DeploymentConfigError(DeploymentError, ValueError):
    """Raised when a deployment plan or network config is malformed."""


class MissingDependency(DeploymentError):
    """Raised when a prerequisite contract has no address in the network config."""

    def __init__(self, contract_name: str, dependent: str = None):
        self.contract_name = contract_name
        self.dependent = dependent
        message = f"{contract_name} contract not deployed yet"
        if dependent:
            message = f"{message} (required by {dependent})"
        super().__init__(message)


class NotDeployed(DeploymentError):
    """Raised when an upgrade targets a contract without a recorded proxy address."""

    def __init__(self, contract_name: str):
        self.contract_name = contract_name
        super().__init__(f"{contract_name} proxy not yet deployed")


class AddressMismatch(DeploymentError):
    """Raised when the predicted and on-chain reported addresses diverge."""

    def __init__(self, contract_name: str, expected: str, actual: str, message: str = None):
        self.contract_name = contract_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            message
            or f"{contract_name} deployed address mismatch - expected {expected}, got {actual}"
        )


class SaltCollision(AddressMismatch):
    """Raised when code already exists at the address a deployment would produce."""

    def __init__(self, contract_name: str, address: str, salt_key: str):
        self.salt_key = salt_key
        super().__init__(
            contract_name,
            expected=address,
            actual=address,
            message=(
                f"Code already exists at {address} for {contract_name} with salt '{salt_key}'; "
                "the salt and bytecode pair has been used before"
            ),
        )


class VerificationMismatch(DeploymentError):
    """Raised when a deployed contract's cross-references disagree with the config."""

    def __init__(self, contract_name: str, mismatches: list):
        self.contract_name = contract_name
        self.mismatches = mismatches
        details = ", ".join(
            f"{m.field} (expected {m.expected}, actual {m.actual})" for m in mismatches
        )
        super().__init__(f"{contract_name} verification failed: {details}")


class TransactionFailure(DeploymentError):
    """Raised when a transaction reverts or its confirmation fails."""

    def __init__(self, message: str, entry=None, receipts: list = None):
        self.entry = entry
        self.receipts = list(receipts or [])
        super().__init__(message)


class ProxyImportError(DeploymentError):
    """Raised when an existing proxy cannot be registered under the given old implementation."""


class UserAborted(DeploymentError):
    """Raised when the operator declines a confirmation prompt."""
