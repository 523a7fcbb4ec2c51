class InvalidHostKey(Exception):
    """
    Exception raised when the configured host key material can not be loaded.
    """


class KeyGenerationError(Exception):
    """
    Exception raised when an error occurs during host key generation.
    """


class ServerStartError(Exception):
    """
    Exception raised when the listening socket can not be created.
    """


class ServerStateError(Exception):
    """
    Base class for lifecycle misuse of a test server.
    """


class ServerAlreadyStartedError(ServerStateError):
    """
    Exception raised when ``start`` is called on a server that was already started.
    """


class ServerNotStartedError(ServerStateError):
    """
    Exception raised when ``close`` is called before ``start``.
    """


class ServerAlreadyClosedError(ServerStateError):
    """
    Exception raised when ``close`` is called on a server that is already closed.
    """


class TerminalError(Exception):
    """
    Exception raised when the pseudo terminal or the shell process can not be started.
    """


class MalformedRequestError(Exception):
    """
    Exception raised when a channel request payload is too short for its fields.
    """


class InvalidPublicKey(Exception):
    """
    Exception raised when the public key accepted for publickey authentication can not be parsed.
    """
