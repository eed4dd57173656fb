"""Error taxonomy shared by the detectors, the scanner runner and the hook"""


class GuardianError(Exception):
    """Base class for all guardian errors"""


class InputMalformed(GuardianError, ValueError):
    """Hook payload could not be parsed or validated"""


class FileNotFound(GuardianError, FileNotFoundError):
    """A file handed to the secret scanner does not exist"""


class SizeLimitExceeded(GuardianError):
    """A file is larger than the secret scanner's cap"""

    def __init__(self, path: str, size: int, limit: int):
        super().__init__(f"File size {size} bytes exceeds scan limit of {limit}: {path}")
        self.path = path
        self.size = size
        self.limit = limit


class ScannerUnavailable(GuardianError):
    """No external scanner executable could be located"""


class ScannerFailed(GuardianError):
    """The external scanner could not be run to completion"""


class PathEscape(GuardianError, ValueError):
    """A sandbox write target resolves outside its sandbox directory"""
