class CanopenError(Exception):
    """Base class for all errors raised by this library."""


class NetworkError(CanopenError):
    """Connection layer error."""


class NotConnectedError(NetworkError):
    """The device is not registered with the network."""

    def __init__(self, node_id: int):
        #: Node ID of the device
        self.node_id = node_id

    def __str__(self):
        return "Node %d not connected" % self.node_id


class DeviceRemovedError(NotConnectedError):
    """The device was unregistered while the operation was pending."""

    def __str__(self):
        return "Node %d was removed" % self.node_id


class RequestFailedError(NetworkError):
    """The request could not be delivered to the connection manager."""
