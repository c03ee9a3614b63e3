"""
Exceptions raised by the grabber service layer.

Callers (management commands, bots) catch GrabberError and show its message
to the user. `retryable` marks failures that may succeed on a later attempt.
"""


class GrabberError(Exception):
    """Base class for every failure the pipeline reports"""

    retryable = False


class AcquisitionError(GrabberError):
    """Raised when no media could be downloaded for a URL"""

    retryable = True


class InvalidURLError(GrabberError):
    """Raised when a URL cannot be parsed. Shown to the user as-is."""

    pass


class ProbeError(GrabberError):
    """Raised when ffprobe cannot describe a file"""

    pass


class UnsupportedCodecError(GrabberError):
    """
    Raised when a file uses a codec the pipeline refuses to handle.

    The message is meant to be shown to the end user as-is.
    """

    pass


class TranscodeError(GrabberError):
    """Raised when ffmpeg fails or does not produce its output file"""

    pass


class FixerError(GrabberError):
    """Raised when a fixer stage fails, or when any file in a batch failed"""

    pass


class WorkspaceError(GrabberError):
    """Raised when an explicitly requested workspace cleanup fails"""

    pass
