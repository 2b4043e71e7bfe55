import pytest

from errors import EmptyContainerError
from stl_mocks import CppQueue, CppStack


def test_stack_push_top_pop(memory):
    stack = CppStack(memory)
    for value in (10, 20, 30):
        stack.push(value)

    assert stack.top() == 30
    assert stack.size() == 3
    assert stack.pop() == 30
    assert stack.top() == 20
    assert stack.size() == 2
    assert not stack.empty()


def test_stack_publishes_contents_to_heap(memory):
    stack = CppStack(memory)
    address = stack.get_address()
    assert memory.snapshot_heap()[address] == {"type": "Stack", "fields": {"items": [], "size": 0}}

    stack.push(10)
    stack.push(20)
    stack.push(30)
    stack.pop()
    assert memory.snapshot_heap()[address] == {
        "type": "Stack",
        "fields": {"items": [10, 20], "size": 2},
    }


def test_queue_is_first_in_first_out(memory):
    queue = CppQueue(memory)
    for value in (1, 2, 3):
        queue.push(value)

    assert queue.front() == 1
    assert queue.back() == 3
    assert queue.pop() == 1
    assert queue.front() == 2
    assert queue.size() == 2
    assert memory.get_field(queue.address, "items") == [2, 3]


def test_each_container_gets_its_own_heap_object(memory):
    first = CppStack(memory)
    second = CppQueue(memory)
    assert first.address != second.address
    heap = memory.snapshot_heap()
    assert heap[first.address]["type"] == "Stack"
    assert heap[second.address]["type"] == "Queue"


@pytest.mark.parametrize("container_class, method", [
    (CppStack, "pop"),
    (CppStack, "top"),
    (CppQueue, "pop"),
    (CppQueue, "front"),
    (CppQueue, "back"),
])
def test_empty_container_access_raises(memory, container_class, method):
    container = container_class(memory)
    assert container.empty()
    with pytest.raises(EmptyContainerError) as excinfo:
        getattr(container, method)()
    assert str(excinfo.value) == f"{container.kind} is empty"


def test_emptied_container_raises_again(memory):
    stack = CppStack(memory)
    stack.push(1)
    stack.pop()
    with pytest.raises(EmptyContainerError):
        stack.pop()
    assert memory.get_field(stack.address, "size") == 0
