"""
Heap-backed stand-ins for std::stack and std::queue.

Each container owns one heap object and republishes its whole item list and
size after every mutation, so a heap snapshot always shows the real contents.
"""

from errors import EmptyContainerError


class _HeapContainer:
    kind = "Container"

    def __init__(self, memory):
        self.memory = memory
        self.items = []
        self.address = memory.malloc(self.kind)
        self._publish()

    def _publish(self):
        self.memory.set_field(self.address, "items", list(self.items))
        self.memory.set_field(self.address, "size", len(self.items))

    def _require_items(self):
        if not self.items:
            raise EmptyContainerError(self.kind)

    def push(self, value):
        self.items.append(value)
        self._publish()

    def empty(self):
        return not self.items

    def size(self):
        return len(self.items)

    def get_address(self):
        return self.address

    def __repr__(self):
        return f"{self.kind}({self.address}, {self.items!r})"


class CppStack(_HeapContainer):
    kind = "Stack"

    def pop(self):
        self._require_items()
        value = self.items.pop()
        self._publish()
        return value

    def top(self):
        self._require_items()
        return self.items[-1]


class CppQueue(_HeapContainer):
    kind = "Queue"

    def pop(self):
        self._require_items()
        value = self.items.pop(0)
        self._publish()
        return value

    def front(self):
        self._require_items()
        return self.items[0]

    def back(self):
        self._require_items()
        return self.items[-1]
