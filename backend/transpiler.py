"""
Transpiler: C++ subset -> instrumented Python.

Every user function becomes a generator. A pause point is
``yield _rt.pause(line, locals(), names)`` and a call to a user function is
``(yield from f(...))``, so the runner can suspend the program at any pause and
the Python call stack stays intact while it waits for the next command.

Example:
    int main() {            def __program__():
      int x = 10;     ->        ...
      x = 15;                   def main():
    }                               _rt.enter('main')
                                    try:
                                        x = 10
                                        yield _rt.pause(2, locals(), ('x',))
                                        x = 15
                                        yield _rt.pause(3, locals(), ('x',))
                                        yield _rt.pause(4, locals(), ())
                                    finally:
                                        _rt.leave()
                                ...
                                yield from main()
"""

import keyword
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import cpp_parser as cp

logger = logging.getLogger(__name__)

RUNTIME = "_rt"
PROGRAM_ENTRY = "__program__"
FILENAME = "<lens>"
MANGLE_PREFIX = "_kw_"
RESERVED = set(keyword.kwlist) | {"locals", RUNTIME, PROGRAM_ENTRY}

BUILTIN_CALLS = {
    "free": f"{RUNTIME}.free",
    "printf": f"{RUNTIME}.printf",
    "sqrt": f"{RUNTIME}.sqrt",
    "pow": f"{RUNTIME}.pow",
    "floor": f"{RUNTIME}.floor",
    "ceil": f"{RUNTIME}.ceil",
    "to_string": f"{RUNTIME}.to_string",
    "abs": "abs",
    "max": "max",
    "min": "min",
}
BUILTIN_NAMES = {
    "endl": repr("\n"),
    "INT_MAX": f"{RUNTIME}.INT_MAX",
    "INT_MIN": f"{RUNTIME}.INT_MIN",
}
CASTS = {"int": "int", "long": "int", "short": "int", "unsigned": "int", "size_t": "int",
         "float": "float", "double": "float", "bool": "bool"}


def py_name(name: str) -> str:
    """Map a source identifier to a Python identifier that cannot clash."""
    if name in RESERVED or name.startswith("__") or name.startswith(MANGLE_PREFIX):
        return MANGLE_PREFIX + name
    return name


def source_name(name: str) -> str:
    if name.startswith(MANGLE_PREFIX):
        return name[len(MANGLE_PREFIX):]
    return name


@dataclass
class TranspileResult:
    code: str
    functions: List[str]
    structs: List[cp.StructDef]
    diagnostics: List[cp.Diagnostic]
    line_map: List[Optional[int]] = field(default_factory=list)

    @property
    def has_main(self) -> bool:
        return "main" in self.functions

    def source_line(self, python_line: int) -> Optional[int]:
        """Source line for a line of the generated code (1-based)."""
        index = min(python_line, len(self.line_map)) - 1
        while index >= 0:
            if self.line_map[index] is not None:
                return self.line_map[index]
            index -= 1
        return None


class _Scope:
    def __init__(self, params=()):
        # insertion ordered, values unused
        self.tracked: Dict[str, None] = dict.fromkeys(params)
        self.yields = False
        self.loop_steps: List[Optional[cp.Assign]] = []

    def track(self, name):
        self.tracked.setdefault(py_name(name), None)


class CodeGenerator:
    def __init__(self, program: cp.Program):
        self.program = program
        self.functions = {fn.name for fn in program.functions} | set(program.prototypes)
        self.lines: List[str] = []
        self.line_map: List[Optional[int]] = []
        self.depth = 0
        self.scope = _Scope()

    def emit(self, text, line=None):
        self.lines.append("    " * self.depth + text)
        self.line_map.append(line)

    def generate(self) -> str:
        top_declared = declared_names(self.program.statements)
        self.emit(f"def {PROGRAM_ENTRY}():")
        self.depth += 1
        self.emit(f"{RUNTIME}.enter('global')")
        self.emit("try:")
        self.depth += 1
        for function in self.program.functions:
            self.gen_function(function, top_declared)

        self.scope = _Scope()
        for statement in self.program.statements:
            self.gen_statement(statement)
        main = next((fn for fn in self.program.functions if fn.name == "main"), None)
        if main is not None:
            args = ", ".join(f"{RUNTIME}.UNDEFINED" for p in main.params if p.default is None)
            self.emit(f"yield from {py_name('main')}({args})", main.line)
            self.scope.yields = True
        if not self.scope.yields:
            self.emit("yield from ()")
        self.depth -= 1
        self.emit("finally:")
        self.emit(f"    {RUNTIME}.leave()")
        self.depth -= 1
        return "\n".join(self.lines) + "\n"

    def gen_function(self, function: cp.FunctionDef, top_declared):
        params = []
        names = []
        for index, param in enumerate(function.params):
            name = py_name(param.name) if param.name else f"_arg{index}"
            names.append(name)
            if param.default is not None:
                params.append(f"{name}={self.expr(param.default)}")
            else:
                params.append(name)
        self.emit(f"def {py_name(function.name)}({', '.join(params)}):", function.line)
        self.depth += 1

        statements = function.body.statements
        outer = (assigned_names(statements) - declared_names(statements)
                 - {p.name for p in function.params}) & top_declared
        if outer:
            self.emit(f"nonlocal {', '.join(sorted(py_name(n) for n in outer))}")

        self.scope = _Scope(n for p, n in zip(function.params, names) if p.name)
        self.emit(f"{RUNTIME}.enter({function.name!r})", function.line)
        self.emit("try:")
        self.depth += 1
        self.gen_block(function.body)
        if not self.scope.yields:
            self.emit("yield from ()")
        self.depth -= 1
        self.emit("finally:")
        self.emit(f"    {RUNTIME}.leave()")
        self.depth -= 1

    # statements

    def pause(self, line, names=None):
        if names is None:
            names = tuple(self.scope.tracked)
        self.emit(f"yield {RUNTIME}.pause({line}, locals(), {tuple(names)!r})", line)
        self.scope.yields = True

    def gen_block(self, block: cp.Block):
        start = len(self.lines)
        for statement in block.statements:
            self.gen_statement(statement)
        if block.close_line is not None:
            self.pause(block.close_line, ())
        if len(self.lines) == start:
            self.emit("pass")

    def gen_statement(self, node, pause=True):
        method = getattr(self, f"gen_{type(node).__name__}")
        method(node, pause)

    def gen_ContainerDecl(self, node, pause):
        factory = f"{RUNTIME}.{node.kind.lower()}"
        for name in node.names:
            self.emit(f"{py_name(name)} = {factory}()", node.line)
            self.scope.track(name)
        if pause:
            self.pause(node.line)

    def gen_VarDecl(self, node, pause):
        for declarator in node.declarators:
            if declarator.array:
                value = self.array_value(declarator)
            elif declarator.init is None:
                value = f"{RUNTIME}.UNDEFINED"
            else:
                value = self.expr(declarator.init)
            self.emit(f"{py_name(declarator.name)} = {value}", node.line)
            self.scope.track(declarator.name)
        if pause:
            self.pause(node.line)

    def array_value(self, declarator):
        size = self.expr(declarator.size) if declarator.size is not None else None
        init = declarator.init
        if init is None:
            if size is None:
                return "[]"
            return f"{RUNTIME}.array({size})"
        if isinstance(init, cp.InitList):
            elements = "[" + ", ".join(self.expr(e) for e in init.elements) + "]"
        else:
            elements = f"{RUNTIME}.chars({self.expr(init)})"
        if size is None:
            return elements
        return f"{RUNTIME}.array({size}, {elements})"

    def gen_Assign(self, node, pause):
        value = node.value
        if node.op != "=":
            value = cp.BinOp(op=node.op[:-1], left=node.target, right=node.value)
        self.assign(node.target, self.expr(value), node.line)
        if node.op == "=" and isinstance(node.target, cp.Name):
            self.scope.track(node.target.name)
        if pause:
            self.pause(node.line)

    def assign(self, target, value, line):
        if isinstance(target, cp.FieldGet):
            self.emit(f"{RUNTIME}.set_field({self.expr(target.target)}, {target.field!r}, {value})",
                      line)
        else:
            self.emit(f"{self.expr(target)} = {value}", line)

    def gen_IncDec(self, node, pause):
        op = "+" if node.op == "++" else "-"
        value = cp.BinOp(op=op, left=node.target, right=cp.Literal(1))
        self.assign(node.target, self.expr(value), node.line)
        if pause:
            self.pause(node.line)

    def gen_ExprStmt(self, node, pause):
        self.emit(self.expr(node.expr), node.line)
        if pause:
            self.pause(node.line)

    def gen_Print(self, node, pause):
        args = [self.expr(arg) for arg in node.args]
        if node.newline:
            args.append("end='\\n'")
        self.emit(f"{RUNTIME}.print({', '.join(args)})", node.line)
        if pause:
            self.pause(node.line)

    def gen_EmptyStmt(self, node, pause):
        self.emit("pass", node.line)
        if pause:
            self.pause(node.line)

    def gen_If(self, node, pause, keyword="if"):
        self.emit(f"{keyword} {self.expr(node.cond)}:", node.line)
        self.gen_branch(node.body, node.line, node.header_pause)
        if isinstance(node.orelse, cp.If):
            self.gen_If(node.orelse, pause, keyword="elif")
        elif isinstance(node.orelse, cp.Else):
            self.emit("else:", node.orelse.line)
            self.gen_branch(node.orelse.body, node.orelse.line, node.orelse.header_pause)

    def gen_branch(self, block, line, header_pause, loop=False):
        self.depth += 1
        if loop:
            self.emit(f"{RUNTIME}.tick()", line)
        if header_pause:
            self.pause(line)
        self.gen_block(block)
        self.depth -= 1

    def gen_While(self, node, pause):
        self.emit(f"while {self.expr(node.cond)}:", node.line)
        self.scope.loop_steps.append(None)
        self.gen_branch(node.body, node.line, node.header_pause, loop=True)
        self.scope.loop_steps.pop()

    def gen_For(self, node, pause):
        if node.init is not None:
            self.gen_statement(node.init, pause=False)
        cond = self.expr(node.cond) if node.cond is not None else "True"
        self.emit(f"while {cond}:", node.line)
        self.scope.loop_steps.append(node.step)
        self.depth += 1
        self.emit(f"{RUNTIME}.tick()", node.line)
        if node.header_pause:
            self.pause(node.line)
        self.gen_block(node.body)
        if node.step is not None:
            self.gen_statement(node.step, pause=False)
        self.depth -= 1
        self.scope.loop_steps.pop()

    def gen_RangeFor(self, node, pause):
        self.scope.track(node.var)
        self.emit(f"for {py_name(node.var)} in {self.expr(node.iterable)}:", node.line)
        self.scope.loop_steps.append(None)
        self.gen_branch(node.body, node.line, node.header_pause, loop=True)
        self.scope.loop_steps.pop()

    # jump statements pause before they jump, a pause after them could never run

    def gen_Return(self, node, pause):
        if pause:
            self.pause(node.line)
        if node.value is None:
            self.emit("return", node.line)
        else:
            self.emit(f"return {self.expr(node.value)}", node.line)

    def gen_Break(self, node, pause):
        if pause:
            self.pause(node.line)
        self.emit("break", node.line)

    def gen_Continue(self, node, pause):
        if pause:
            self.pause(node.line)
        step = self.scope.loop_steps[-1] if self.scope.loop_steps else None
        if step is not None:
            self.gen_statement(step, pause=False)
        self.emit("continue", node.line)

    def gen_BlockStmt(self, node, pause):
        self.gen_block(node.block)

    def gen_Unsupported(self, node, pause):
        self.emit(f"{RUNTIME}.unsupported({node.line}, {node.text!r})", node.line)

    # expressions

    def expr(self, node) -> str:
        method = getattr(self, f"expr_{type(node).__name__}")
        return method(node)

    def expr_Name(self, node):
        if node.name in BUILTIN_NAMES:
            return BUILTIN_NAMES[node.name]
        return py_name(node.name)

    def expr_Literal(self, node):
        return repr(node.value)

    def expr_CharLiteral(self, node):
        return f"{RUNTIME}.char({node.value!r})"

    def expr_BinOp(self, node):
        left = self.expr(node.left)
        right = self.expr(node.right)
        if node.op == "/":
            return f"{RUNTIME}.div({left}, {right})"
        if node.op == "%":
            return f"{RUNTIME}.mod({left}, {right})"
        if node.op in ("&&", "||"):
            op = "and" if node.op == "&&" else "or"
            return f"bool({left} {op} {right})"
        return f"({left} {node.op} {right})"

    def expr_UnaryOp(self, node):
        operand = self.expr(node.operand)
        if node.op == "!":
            return f"(not {operand})"
        return f"({node.op}{operand})"

    def expr_Ternary(self, node):
        return f"({self.expr(node.if_true)} if {self.expr(node.cond)} else {self.expr(node.if_false)})"

    def expr_Call(self, node):
        args = ", ".join(self.expr(arg) for arg in node.args)
        if node.name in self.functions:
            self.scope.yields = True
            return f"(yield from {py_name(node.name)}({args}))"
        if node.name == "malloc":
            return self.malloc_call(node)
        target = BUILTIN_CALLS.get(node.name, py_name(node.name))
        return f"{target}({args})"

    def malloc_call(self, node):
        arg = node.args[0] if len(node.args) == 1 else None
        if isinstance(arg, cp.Sizeof):
            return f"{RUNTIME}.malloc({arg.type_name!r})"
        return f"{RUNTIME}.malloc('block')"

    def expr_MethodCall(self, node):
        args = ", ".join(self.expr(arg) for arg in node.args)
        return f"{self.expr(node.target)}.{node.method}({args})"

    def expr_Index(self, node):
        return f"{self.expr(node.target)}[{self.expr(node.index)}]"

    def expr_FieldGet(self, node):
        return f"{RUNTIME}.get_field({self.expr(node.target)}, {node.field!r})"

    def expr_New(self, node):
        return f"{RUNTIME}.malloc({node.type_name!r})"

    def expr_Sizeof(self, node):
        return f"{RUNTIME}.sizeof({node.type_name!r})"

    def expr_Cast(self, node):
        operand = self.expr(node.operand)
        if node.pointer or node.type_name not in CASTS:
            return operand
        return f"{CASTS[node.type_name]}({operand})"

    def expr_InitList(self, node):
        return "[" + ", ".join(self.expr(e) for e in node.elements) + "]"


def walk(statements):
    """Yield every statement, descending into nested blocks."""
    for statement in statements:
        yield statement
        if isinstance(statement, cp.If):
            yield from walk(statement.body.statements)
            if statement.orelse is not None:
                yield from walk([statement.orelse])
        elif isinstance(statement, cp.Else):
            yield from walk(statement.body.statements)
        elif isinstance(statement, (cp.While, cp.RangeFor)):
            yield from walk(statement.body.statements)
        elif isinstance(statement, cp.For):
            yield from walk([s for s in (statement.init, statement.step) if s is not None])
            yield from walk(statement.body.statements)
        elif isinstance(statement, cp.BlockStmt):
            yield from walk(statement.block.statements)


def declared_names(statements):
    names = set()
    for statement in walk(statements):
        if isinstance(statement, cp.VarDecl):
            names.update(d.name for d in statement.declarators)
        elif isinstance(statement, cp.ContainerDecl):
            names.update(statement.names)
        elif isinstance(statement, cp.RangeFor):
            names.add(statement.var)
    return names


def assigned_names(statements):
    return {
        statement.target.name
        for statement in walk(statements)
        if isinstance(statement, (cp.Assign, cp.IncDec)) and isinstance(statement.target, cp.Name)
    }


def transpile(code: str) -> TranspileResult:
    program = cp.parse(code)
    generator = CodeGenerator(program)
    python_code = generator.generate()
    for diagnostic in program.diagnostics:
        logger.debug("line %s: %s (%s)", diagnostic.line, diagnostic.message, diagnostic.text)
    return TranspileResult(
        code=python_code,
        functions=[fn.name for fn in program.functions],
        structs=program.structs,
        diagnostics=program.diagnostics,
        line_map=generator.line_map,
    )
