import click
from eth_utils import to_checksum_address

from xchain_deployment.create2 import get_salt_from_key


class ChecksumAddress(click.ParamType):
    name = "checksum_address"

    def convert(self, value, param, ctx):
        try:
            value = to_checksum_address(value=value)
        except ValueError:
            self.fail("Invalid ethereum address", param, ctx)
        else:
            return value


class DeploymentKey(click.ParamType):
    """A non-empty salt key; converts to the key itself, not its hash."""

    name = "deployment_key"

    def convert(self, value, param, ctx):
        try:
            get_salt_from_key(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)
        return value
