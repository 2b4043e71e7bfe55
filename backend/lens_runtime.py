"""
Objects the instrumented program sees as ``_rt``.

Everything generated code can do to memory, the console or the runner goes
through ``LensRuntime``, so the transpiler output never touches the memory
model directly.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import StepLimitExceeded, UnsupportedConstructError
from memory import UNDEFINED, Address, Memory
from stl_mocks import CppQueue, CppStack, _HeapContainer
from transpiler import source_name

logger = logging.getLogger(__name__)

SIZEOF = {"char": 1, "bool": 1, "short": 2, "int": 4, "float": 4, "long": 8, "double": 8,
          "pointer": 8, "size_t": 8}
PRINTF_RE = re.compile(r"%([-+ #0]*\d*(?:\.\d+)?)(?:hh|h|ll|l|z|L)?([diouxXfFeEgGcsp%])")
PRINTF_SPECS = {"i": "d", "u": "d", "p": "s"}

# what the generated code may reach besides _rt
SAFE_BUILTINS = {
    "abs": abs, "bool": bool, "chr": chr, "float": float, "int": int, "len": len,
    "list": list, "locals": locals, "max": max, "min": min, "ord": ord, "str": str,
}


class Char(int):
    """A C char: arithmetic sees the code point, output sees the character."""

    def __str__(self):
        return chr(self)

    def __repr__(self):
        return repr(chr(self))


@dataclass
class Pause:
    line: int
    variables: Dict[str, Any]


def snapshot_value(value):
    if isinstance(value, _HeapContainer):
        return value.address
    if isinstance(value, (list, tuple)):
        return [snapshot_value(v) for v in value]
    return value


def format_value(value) -> str:
    """Render a value the way cout would."""
    if isinstance(value, Char):
        return str(value)
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        return f"{value:g}"
    if value is None:
        return "0"
    if isinstance(value, _HeapContainer):
        return str(value.address)
    if isinstance(value, list):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return str(value)


class LensRuntime:
    UNDEFINED = UNDEFINED
    INT_MAX = 2 ** 31 - 1
    INT_MIN = -(2 ** 31)

    def __init__(self, memory: Memory, max_steps: Optional[int] = None):
        self.memory = memory
        self.max_steps = max_steps
        self.iterations = 0
        self.output = []

    @property
    def text(self) -> str:
        return "".join(self.output)

    # frames and pauses

    def enter(self, function_name):
        self.memory.push_frame(function_name)

    def leave(self):
        self.memory.pop_frame()

    def tick(self):
        """Count one loop iteration against the step limit."""
        self.iterations += 1
        if self.max_steps is not None and self.iterations > self.max_steps:
            raise StepLimitExceeded(self.max_steps)

    def pause(self, line, scope, names) -> Pause:
        variables = {source_name(name): snapshot_value(scope.get(name, UNDEFINED)) for name in names}
        self.memory.update_variables(variables)
        self.memory.set_line(line)
        return Pause(line=line, variables=variables)

    # heap

    def malloc(self, type_name) -> Address:
        return self.memory.malloc(type_name)

    def free(self, address):
        self.memory.free(address)

    def get_field(self, address, field_name):
        return self.memory.get_field(address, field_name)

    def set_field(self, address, field_name, value):
        self.memory.set_field(address, field_name, snapshot_value(value))

    def stack(self):
        return CppStack(self.memory)

    def queue(self):
        return CppQueue(self.memory)

    @staticmethod
    def array(size, elements=None):
        if elements is None:
            return [UNDEFINED] * size
        # C fills the rest of a partly initialised array with zeros
        return list(elements) + [0] * (size - len(elements))

    @staticmethod
    def sizeof(type_name):
        return SIZEOF.get(type_name, 8)

    @staticmethod
    def char(text):
        return Char(ord(text))

    @staticmethod
    def chars(value):
        """Elements of a char array initialised from a string literal."""
        if isinstance(value, str):
            return [Char(ord(c)) for c in value]
        return list(value)

    # console

    def print(self, *args, end=""):
        text = "".join(format_value(arg) for arg in args) + end
        self._write(text)

    def printf(self, fmt, *args):
        values = list(args)
        index = 0

        def convert(match):
            nonlocal index
            flags, spec = match.groups()
            if spec == "%":
                return "%%"
            if index < len(values):
                if spec == "c" and isinstance(values[index], int):
                    values[index] = chr(values[index])
                elif spec in ("s", "p"):
                    values[index] = format_value(values[index])
                index += 1
            return "%" + flags + PRINTF_SPECS.get(spec, spec)

        self._write(PRINTF_RE.sub(convert, fmt) % tuple(values))

    def _write(self, text):
        logger.debug("program output: %r", text)
        self.output.append(text)

    # arithmetic with C semantics

    @staticmethod
    def div(a, b):
        if isinstance(a, int) and isinstance(b, int):
            quotient = abs(a) // abs(b)
            return quotient if (a < 0) == (b < 0) else -quotient
        return a / b

    @classmethod
    def mod(cls, a, b):
        if isinstance(a, int) and isinstance(b, int):
            return a - b * cls.div(a, b)
        return math.fmod(a, b)

    @staticmethod
    def sqrt(x):
        return math.sqrt(x)

    @staticmethod
    def pow(x, y):
        return math.pow(x, y)

    @staticmethod
    def floor(x):
        return float(math.floor(x))

    @staticmethod
    def ceil(x):
        return float(math.ceil(x))

    @staticmethod
    def to_string(value):
        if isinstance(value, float):
            return f"{value:f}"
        return format_value(value)

    @staticmethod
    def unsupported(line, text):
        raise UnsupportedConstructError(line, text)
