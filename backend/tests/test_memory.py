import copy

import pytest

from errors import InvalidAddressError
from memory import UNDEFINED, Address, HeapAccessPolicy, Memory


def test_malloc_hands_out_increasing_addresses(memory):
    first = memory.malloc("Node")
    second = memory.malloc("Node")
    assert first == "0x1000"
    assert second == "0x1010"
    assert isinstance(first, Address)


def test_addresses_are_never_reused_after_free(memory):
    seen = []
    for _ in range(5):
        address = memory.malloc("Node")
        seen.append(int(address, 16))
        memory.free(address)
    assert seen == sorted(set(seen))


def test_custom_base_and_stride():
    memory = Memory(base=0x2000, stride=8)
    assert memory.malloc("A") == "0x2000"
    assert memory.malloc("B") == "0x2008"


def test_stride_must_be_positive():
    with pytest.raises(ValueError):
        Memory(stride=0)


def test_fields_round_trip(memory):
    address = memory.malloc("Node")
    memory.set_field(address, "val", 7)
    assert memory.get_field(address, "val") == 7
    assert memory.get_field(address, "next") is None


def test_freed_object_reads_as_none_and_ignores_writes(memory):
    a = memory.malloc("Node")
    b = memory.malloc("Node")
    memory.set_field(a, "val", 1)
    memory.free(a)

    assert memory.get_field(a, "val") is None
    memory.set_field(a, "val", 2)
    assert not memory.is_live(a)
    assert memory.is_live(b)
    assert list(memory.snapshot_heap()) == [b]


def test_permissive_policy_ignores_unknown_addresses(memory):
    memory.free("0x9999")
    memory.free(None)
    memory.set_field("not an address", "x", 1)
    assert memory.get_field(None, "x") is None


def test_strict_policy_raises_on_invalid_access():
    memory = Memory(policy=HeapAccessPolicy.STRICT)
    address = memory.malloc("Node")
    memory.free(address)

    with pytest.raises(InvalidAddressError):
        memory.get_field(address, "val")
    with pytest.raises(InvalidAddressError):
        memory.set_field(address, "val", 1)
    with pytest.raises(InvalidAddressError):
        memory.free(address)


def test_snapshot_heap_is_a_copy(memory):
    address = memory.malloc("Stack")
    memory.set_field(address, "items", [1, 2])
    snapshot = memory.snapshot_heap()
    snapshot[address]["fields"]["items"].append(3)
    assert memory.get_field(address, "items") == [1, 2]
    assert snapshot[address]["type"] == "Stack"


def test_frames_push_and_pop(memory):
    memory.push_frame("global")
    memory.push_frame("main")
    memory.update_variables({"x": 1})
    memory.set_line(3)

    assert memory.current_variables() == {"x": 1}
    stack = memory.snapshot_stack()
    assert [frame["name"] for frame in stack] == ["global", "main"]
    assert stack[1] == {"name": "main", "variables": {"x": 1}, "line": 3}

    active = memory.pop_frame()
    assert active.name == "global"
    assert memory.pop_frame() is None
    assert memory.pop_frame() is None
    assert memory.current_variables() == {}


def test_update_without_frame_is_a_no_op(memory):
    memory.update_variables({"x": 1})
    memory.set_line(4)
    assert memory.snapshot_stack() == []


def test_clear_is_idempotent(memory):
    memory.push_frame("main")
    memory.malloc("Node")
    memory.clear()
    memory.clear()
    assert memory.snapshot_stack() == []
    assert memory.snapshot_heap() == {}
    assert memory.current_frame is None
    assert memory.malloc("Node") == "0x1000"


def test_undefined_marker():
    assert repr(UNDEFINED) == "undefined"
    assert not UNDEFINED
    assert copy.deepcopy({"x": UNDEFINED})["x"] is UNDEFINED
