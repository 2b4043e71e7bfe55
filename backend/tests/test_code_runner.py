import pytest

from code_runner import CodeRunner, RunState
from conftest import step_through, trace
from errors import RunnerBusyError
from memory import UNDEFINED

IF_ELSE = """\
int main() {
    int x = 10;
    if (x > 5) {
        x = 15;
    } else {
        cout << "small" << endl;
    }
}
"""

STACK = """\
#include <stack>
using namespace std;
int main() {
    stack<int> s;
    s.push(10);
    s.push(20);
    s.push(30);
    s.pop();
}
"""

LINKED = """\
struct Node {
    int val;
    Node* next;
};
int main() {
    Node* a = new Node();
    Node* b = new Node();
    a->next = b;
}
"""


def test_straight_line_program_pauses_after_each_statement(runner):
    paused, final = step_through(runner, "int a = 1;\nint b = 2;\na = 3;\n")
    assert trace(paused) == [
        (1, {"a": 1}),
        (2, {"a": 1, "b": 2}),
        (3, {"a": 3, "b": 2}),
    ]
    assert final.state is RunState.IDLE
    assert final.snapshot.line is None


def test_if_else_pause_sequence(runner):
    paused, final = step_through(runner, IF_ELSE)
    assert trace(paused) == [
        (2, {"x": 10}),
        (3, {"x": 10}),
        (4, {"x": 15}),
        (8, {}),
    ]
    assert final.output == ""
    assert final.error is None


def test_else_branch_runs_when_condition_fails(runner):
    paused, final = step_through(runner, IF_ELSE.replace("int x = 10;", "int x = 1;"))
    assert [state.snapshot.line for state in paused] == [2, 6, 7, 8]
    assert final.output == "small\n"


def test_stack_contents_visible_on_heap(runner):
    paused, final = step_through(runner, STACK)
    after_pop = next(state for state in paused if state.snapshot.line == 8)
    assert after_pop.snapshot.variables == {"s": "0x1000"}
    assert after_pop.snapshot.heap == {
        "0x1000": {"type": "Stack", "fields": {"items": [10, 20], "size": 2}},
    }
    assert final.snapshot.heap["0x1000"]["fields"]["size"] == 2


def test_linked_nodes_share_addresses(runner):
    paused, _ = step_through(runner, LINKED)
    last = paused[-2].snapshot
    assert last.line == 8
    assert last.variables == {"a": "0x1000", "b": "0x1010"}
    assert last.heap["0x1000"] == {"type": "Node", "fields": {"next": "0x1010"}}
    assert last.heap["0x1010"] == {"type": "Node", "fields": {}}


def test_declared_but_unset_variable_is_undefined(runner):
    state = runner.run("int main() {\n    int x;\n    x = 4;\n}\n")
    assert state.snapshot.variables == {"x": UNDEFINED}
    state = runner.advance()
    assert state.snapshot.variables == {"x": 4}


def test_nested_call_pauses_inside_callee(runner):
    source = """\
int add(int a, int b) {
    int c = a + b;
    return c;
}
int main() {
    int r = add(2, 3);
    cout << r << endl;
}
"""
    paused, final = step_through(runner, source)
    assert trace(paused) == [
        (2, {"a": 2, "b": 3, "c": 5}),
        (3, {"a": 2, "b": 3, "c": 5}),
        (6, {"r": 5}),
        (7, {"r": 5}),
        (8, {}),
    ]
    frames = [frame["name"] for frame in paused[0].snapshot.stack]
    assert frames == ["global", "main", "add"]
    assert [frame["name"] for frame in paused[2].snapshot.stack] == ["global", "main"]
    assert final.output == "5\n"


def test_recursion(runner):
    source = """\
int fact(int n) {
    if (n <= 1) return 1;
    return n * fact(n - 1);
}
int main() {
    int f = fact(4);
}
"""
    paused, _ = step_through(runner, source)
    deepest = max(len(state.snapshot.stack) for state in paused)
    assert deepest == 2 + 4
    assert paused[-2].snapshot.variables == {"f": 24}


def test_for_loop_pauses(runner):
    source = """\
int main() {
    int total = 0;
    for (int i = 0; i < 3; i++) {
        total += i;
    }
    cout << total << endl;
}
"""
    paused, final = step_through(runner, source)
    assert [state.snapshot.line for state in paused] == [2, 3, 4, 5, 3, 4, 5, 3, 4, 5, 6, 7]
    assert paused[1].snapshot.variables == {"total": 0, "i": 0}
    assert final.output == "3\n"


def test_globals_updated_from_functions(runner):
    source = """\
int counter = 0;
void bump() {
    counter = counter + 1;
}
int main() {
    bump();
    bump();
    cout << counter << endl;
}
"""
    _, final = step_through(runner, source)
    assert final.output == "2\n"


def test_c_integer_division(runner):
    _, final = step_through(runner, 'int main() {\n    cout << -7 / 2 << " " << -7 % 2 << endl;\n}\n')
    assert final.output == "-3 -1\n"


def test_printf_output(runner):
    _, final = step_through(runner, 'int main() {\n    printf("%d-%s %c\\n", 3, "x", 65);\n}\n')
    assert final.output == "3-x A\n"


def test_freed_object_disappears_from_heap(runner):
    source = "int main() {\n    Node* n = new Node();\n    delete n;\n    int v = n->val;\n}\n"
    paused, final = step_through(runner, source)
    assert paused[0].snapshot.heap == {"0x1000": {"type": "Node", "fields": {}}}
    assert paused[1].snapshot.heap == {}
    assert paused[2].snapshot.variables["v"] is None
    assert final.error is None


def test_reset_with_outstanding_pause(runner):
    state = runner.run(IF_ELSE)
    assert state.running
    state = runner.reset()
    assert state.state is RunState.ABORTED
    assert not state.running
    assert state.snapshot.line is None
    assert state.snapshot.variables == {}
    assert runner.memory.snapshot_stack() == []
    assert runner.memory.snapshot_heap() == {}

    # nothing resumes after a reset
    assert runner.advance().state is RunState.ABORTED

    paused, final = step_through(runner, IF_ELSE)
    assert len(paused) == 4
    assert final.state is RunState.IDLE


def test_reset_when_idle(runner):
    assert runner.reset().state is RunState.IDLE


def test_advance_without_program_is_a_no_op(runner):
    state = runner.advance()
    assert state.state is RunState.IDLE
    assert state.snapshot.line is None


def test_run_while_running_is_rejected(runner):
    runner.run(IF_ELSE)
    with pytest.raises(RunnerBusyError):
        runner.run(IF_ELSE)
    assert runner.current_line == 2


def test_runtime_error_is_reported_with_line(runner):
    source = "int main() {\n    stack<int> s;\n    s.pop();\n}\n"
    paused, final = step_through(runner, source)
    assert len(paused) == 1
    assert final.state is RunState.IDLE
    assert final.error.type == "EmptyContainerError"
    assert final.error.message == "Stack is empty"
    assert final.error.line == 3
    assert runner.memory.snapshot_stack() == []


def test_unsupported_construct_fails_when_reached(runner):
    source = "int main() {\n    int x = 1;\n    int* p = &x;\n}\n"
    state = runner.run(source)
    assert state.running
    assert state.diagnostics[0].line == 3
    state = runner.advance()
    assert state.error.type == "UnsupportedConstructError"
    assert state.error.line == 3


def test_division_by_zero_reports_line(runner):
    _, final = step_through(runner, "int main() {\n    int a = 0;\n    int b = 4 / a;\n}\n")
    assert final.error.type == "ZeroDivisionError"
    assert final.error.line == 3


def test_step_limit_stops_runaway_programs():
    runner = CodeRunner(max_steps=20)
    paused, final = step_through(runner, "int main() {\n    int x = 0;\n    while (true) {\n"
                                         "        x++;\n    }\n}\n")
    assert len(paused) == 20
    assert final.error.type == "StepLimitExceeded"
    assert not final.running


def test_observers_are_notified(runner):
    seen = []
    unsubscribe = runner.subscribe(lambda state: seen.append(state.snapshot.line))
    step_through(runner, "int a = 1;\nint b = 2;\n")
    assert seen == [1, 2, None]

    unsubscribe()
    step_through(runner, "int a = 1;\n")
    assert seen == [1, 2, None]


def test_failing_observer_does_not_break_the_runner(runner):
    def broken(state):
        raise RuntimeError("observer failed")

    runner.subscribe(broken)
    paused, final = step_through(runner, "int a = 1;\n")
    assert len(paused) == 1
    assert final.error is None


def test_program_cannot_reach_host_builtins(runner):
    paused, final = step_through(runner, 'int main() {\n    open("x");\n}\n')
    assert paused == []
    assert final.error.type == "NameError"
    assert final.error.line == 2


def test_braceless_loop_header_pauses_each_iteration(runner):
    source = "int main() {\n    int i = 0;\n    while (i < 2)\n        i++;\n}\n"
    paused, final = step_through(runner, source)
    assert trace(paused) == [
        (2, {"i": 0}),
        (3, {"i": 0}),
        (4, {"i": 1}),
        (3, {"i": 1}),
        (4, {"i": 2}),
        (5, {}),
    ]
    assert final.error is None


def test_loop_without_pauses_hits_step_limit():
    runner = CodeRunner(max_steps=50)
    state = runner.run("int main() { while (true) {} }\n")
    assert not state.running
    assert state.error.type == "StepLimitExceeded"
    assert state.error.line == 1
    assert runner.memory.snapshot_stack() == []


def test_char_arithmetic(runner):
    source = """\
int main() {
    char c = 'c';
    int k = c - 'a';
    char s[] = "hi";
    int d = s[1] - s[0];
    cout << c << k << s[0] << d << endl;
}
"""
    paused, final = step_through(runner, source)
    variables = paused[1].snapshot.variables
    assert str(variables["c"]) == "c"
    assert variables["k"] == 2
    assert paused[3].snapshot.variables["d"] == 1
    assert final.output == "c2h1\n"
    assert final.error is None


def test_logical_operators_give_booleans(runner):
    source = "int main() {\n    int a = 3;\n    bool b = a && 7;\n    bool c = a || 0;\n    bool z = 0 || 0;\n}\n"
    paused, _ = step_through(runner, source)
    variables = paused[3].snapshot.variables
    assert variables["b"] is True
    assert variables["c"] is True
    assert variables["z"] is False
