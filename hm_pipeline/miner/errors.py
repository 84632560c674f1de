"""Exception hierarchy for the external heuristics-miner process."""


class MinerError(RuntimeError):
    """Base class for miner engine failures."""


class ProvisionError(MinerError):
    """The miner jar could not be installed."""


class ArtifactSourceMissing(ProvisionError):
    """The trusted jar copy does not exist."""


class ProvisionIOError(ProvisionError):
    """Creating the install directory or writing the jar failed."""


class StartError(MinerError):
    """The miner process could not be provisioned or launched."""


class ChannelError(MinerError):
    """A request/response exchange with the miner process failed."""


class ChannelClosed(ChannelError):
    """The miner's stdin or stdout was closed mid-exchange."""


class ChannelTimeout(ChannelError):
    """The miner did not finish its response before the deadline."""
