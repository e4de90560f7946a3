class TrueTouchError(RuntimeError):
    """Base error for the TrueTouch SDK."""
    pass


class DeviceNotFoundError(TrueTouchError):
    """Raised when a device scan finishes without finding the glove."""
    pass


class ServiceNotFoundError(TrueTouchError):
    """Raised when service discovery finishes without the expected service."""
    pass


class TransportError(TrueTouchError):
    """Base transport error."""
    pass


class TransmissionError(TransportError):
    """Raised when the transport fails to write a frame."""
    def __init__(self, message, frame=None):
        super().__init__(message)
        self.frame = frame  # bytes that failed to send, if known


class ConnectionLostError(TransportError):
    """Raised or reported when an established link drops."""
    pass


class FrameFormatError(TrueTouchError):
    """Raised when a wire frame does not match its command's layout."""
    pass


class InvalidTransitionError(TrueTouchError):
    """Raised on a connection state change the transition table forbids."""
    pass
