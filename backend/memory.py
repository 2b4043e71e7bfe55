"""
Memory model for the stepped runner: a call stack of frames and a heap arena.

The heap is an arena of slots. Slot ``i`` lives at ``base + i * stride`` and
slots are never reused inside one run, so a stale pointer never aliases a newer
object. Addresses are handed to user code as ``Address`` strings (``0x1010``)
which keeps them apart from plain numbers in snapshots.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import InvalidAddressError

logger = logging.getLogger(__name__)

DEFAULT_HEAP_BASE = 0x1000
DEFAULT_HEAP_STRIDE = 0x10


class _Undefined:
    """Marker for a declared name that has no value yet."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED = _Undefined()


class Address(str):
    """Heap address token, e.g. ``Address.from_int(0x1000) == '0x1000'``."""

    @classmethod
    def from_int(cls, value: int) -> "Address":
        return cls(f"0x{value:x}")

    def __repr__(self):
        return f"Address({str(self)!r})"

    # immutable, so copies can share the token
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


class HeapAccessPolicy(Enum):
    PERMISSIVE = "permissive"  # unknown address: writes ignored, reads give None
    STRICT = "strict"  # unknown address: InvalidAddressError


@dataclass
class Frame:
    name: str
    variables: Dict[str, Any] = field(default_factory=dict)
    line: Optional[int] = None


@dataclass
class HeapObject:
    type: str
    address: Address
    fields: Dict[str, Any] = field(default_factory=dict)


class Memory:
    def __init__(self, base: int = DEFAULT_HEAP_BASE, stride: int = DEFAULT_HEAP_STRIDE,
                 policy: HeapAccessPolicy = HeapAccessPolicy.PERMISSIVE):
        if stride <= 0:
            raise ValueError("heap stride must be positive")
        self.base = base
        self.stride = stride
        self.policy = policy
        self.stack: List[Frame] = []
        self.current_frame: Optional[Frame] = None
        self._slots: List[Optional[HeapObject]] = []

    # --- Stack -----------------------------------------------------------

    def push_frame(self, function_name: str) -> Frame:
        frame = Frame(name=function_name)
        self.stack.append(frame)
        self.current_frame = frame
        return frame

    def pop_frame(self) -> Optional[Frame]:
        """Drop the top frame and return the one that is active afterwards."""
        if self.stack:
            self.stack.pop()
        self.current_frame = self.stack[-1] if self.stack else None
        return self.current_frame

    def update_variables(self, variables: Dict[str, Any]) -> None:
        if self.current_frame is not None:
            self.current_frame.variables.update(variables)

    def set_line(self, line_number: int) -> None:
        if self.current_frame is not None:
            self.current_frame.line = line_number

    def current_variables(self) -> Dict[str, Any]:
        if self.current_frame is None:
            return {}
        return copy.deepcopy(self.current_frame.variables)

    # --- Heap ------------------------------------------------------------

    def malloc(self, type_name: str) -> Address:
        address = Address.from_int(self.base + len(self._slots) * self.stride)
        self._slots.append(HeapObject(type=type_name, address=address))
        logger.debug("malloc %s -> %s", type_name, address)
        return address

    def free(self, address) -> None:
        index = self._slot_index(address)
        if index is None or self._slots[index] is None:
            if self.policy is HeapAccessPolicy.STRICT:
                raise InvalidAddressError(address, "free")
            return
        logger.debug("free %s", address)
        self._slots[index] = None

    def get_object(self, address) -> Optional[HeapObject]:
        index = self._slot_index(address)
        if index is None:
            return None
        return self._slots[index]

    def set_field(self, address, field_name: str, value) -> None:
        obj = self.get_object(address)
        if obj is None:
            if self.policy is HeapAccessPolicy.STRICT:
                raise InvalidAddressError(address, f"write of '{field_name}'")
            return
        obj.fields[field_name] = value

    def get_field(self, address, field_name: str):
        obj = self.get_object(address)
        if obj is None:
            if self.policy is HeapAccessPolicy.STRICT:
                raise InvalidAddressError(address, f"read of '{field_name}'")
            return None
        return obj.fields.get(field_name)

    def is_live(self, address) -> bool:
        return self.get_object(address) is not None

    def _slot_index(self, address) -> Optional[int]:
        if not isinstance(address, str):
            return None
        try:
            offset = int(address, 16) - self.base
        except ValueError:
            return None
        if offset < 0 or offset % self.stride:
            return None
        index = offset // self.stride
        if index >= len(self._slots):
            return None
        return index

    # --- Snapshots -------------------------------------------------------

    def snapshot_stack(self) -> List[Dict[str, Any]]:
        return [
            {"name": frame.name, "variables": copy.deepcopy(frame.variables), "line": frame.line}
            for frame in self.stack
        ]

    def snapshot_heap(self) -> Dict[Address, Dict[str, Any]]:
        return {
            obj.address: {"type": obj.type, "fields": copy.deepcopy(obj.fields)}
            for obj in self._slots
            if obj is not None
        }

    def clear(self) -> None:
        self.stack = []
        self.current_frame = None
        self._slots = []
