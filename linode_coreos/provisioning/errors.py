"""Provisioning error taxonomy.

Every fatal step failure is a ProvisioningError carrying the state the
workflow was in when it failed. The CLI maps any of them to exit code 1.
"""


class ProvisioningError(Exception):
    """Fatal provisioning failure."""

    def __init__(self, message, state=None):
        super().__init__(message)
        self.state = state


class MissingPrerequisiteError(ProvisioningError):
    """A required tool or argument is missing; nothing remote was created."""


class ResourceCreationError(ProvisioningError):
    """The API gave no usable identifier for a required resource."""


class PlanningError(ProvisioningError):
    """The disk layout leaves no room for the main OS partition."""


class NetworkResolutionError(ProvisioningError):
    """The node has no public or no private address."""


class NodeUnreachableError(ProvisioningError):
    """SSH never came up before the deadline, or polling was cancelled."""


class RemoteCommandError(ProvisioningError):
    """A file transfer or remote command on the node failed."""


class LinodeApiError(Exception):
    """The Linode API answered with a non-empty ERRORARRAY."""

    def __init__(self, action, errors):
        self.action = action
        self.errors = errors
        details = "; ".join(f"{e.get('ERRORCODE')}: {e.get('ERRORMESSAGE')}" for e in errors)
        super().__init__(f"{action} failed: {details}")
