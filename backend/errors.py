class LensError(Exception):
    """Base class for everything the engine raises on purpose."""


class MemoryModelError(LensError):
    pass


class InvalidAddressError(MemoryModelError):
    def __init__(self, address, operation):
        super().__init__(f"{operation} on invalid address {address!r}")
        self.address = address
        self.operation = operation


class EmptyContainerError(LensError):
    def __init__(self, kind):
        super().__init__(f"{kind} is empty")
        self.kind = kind


class TranspileError(LensError):
    """A statement the parser cannot make sense of.

    The parser catches these per statement and turns them into diagnostics,
    so they never escape ``transpile``.
    """

    def __init__(self, reason, line=None):
        super().__init__(f"line {line}: {reason}" if line else reason)
        self.reason = reason
        self.line = line


class UnsupportedConstructError(LensError):
    def __init__(self, line, text):
        super().__init__(f"unsupported construct on line {line}: {text}")
        self.line = line
        self.text = text


class RunnerBusyError(LensError):
    pass


class StepLimitExceeded(LensError):
    def __init__(self, limit):
        super().__init__(f"program did not finish within {limit} steps")
        self.limit = limit
