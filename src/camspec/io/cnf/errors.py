"""Exceptions raised by the CNF codec."""


class CNFError(Exception):
    """Base class for all CNF decode/encode failures."""
    pass


class NotOpenError(CNFError):
    """Raised when the input file or stream cannot be opened for reading."""
    pass


class BlockNotFoundError(CNFError):
    """Raised when a required marker block is absent from the container."""
    pass


class OffsetOutOfRangeError(CNFError):
    """Raised when a field offset plus its width runs past the end of the stream."""
    pass


class InvalidChannelCountError(CNFError):
    """Raised when a channel count in [64, 65536] is not a power of two."""
    pass


class InvalidCalibrationError(CNFError):
    """Raised when non-zero energy calibration coefficients fail validation."""
    pass


class TimestampOverflowError(CNFError):
    """Raised when a CAM timestamp cannot be represented as a datetime."""
    pass


class CNFEncodeError(CNFError):
    """Raised when a measurement cannot be written as a CNF container."""
    pass


class UnsupportedCalibrationError(CNFEncodeError):
    """Raised when an energy calibration has no representable CNF form."""
    pass


class TimeEncodeError(CNFEncodeError):
    """Raised when a timestamp or duration cannot be exactly encoded."""
    pass


class ValueEncodeError(CNFEncodeError):
    """Raised when a float or text field does not fit its CNF slot."""
    pass
