"""Domain exceptions raised by the service layer."""


class CommandCenterError(Exception):
    """Base class for service errors."""


class ConnectionNotFoundError(CommandCenterError):
    """No connection record exists with the given id."""

    def __init__(self, connection_id: str):
        super().__init__(f"Connection '{connection_id}' not found")
        self.connection_id = connection_id


class ConnectionUnavailableError(CommandCenterError):
    """The connection exists but has no live session."""

    def __init__(self, connection_id: str):
        super().__init__(f"Connection '{connection_id}' is not connected")
        self.connection_id = connection_id


class NotConnectedError(ConnectionUnavailableError):
    """A command was issued against a connection without a live session."""


class ConnectionExistsError(CommandCenterError):
    """A live session is already open for the connection."""


class ConnectionConfigError(CommandCenterError):
    """Connection parameters are missing or point at missing files."""


class CommandTimeoutError(CommandCenterError):
    """A remote command did not finish within its deadline."""


class OperationNotFoundError(CommandCenterError):
    """No operation record exists with the given id."""

    def __init__(self, operation_id: str):
        super().__init__(f"Operation '{operation_id}' not found")
        self.operation_id = operation_id
