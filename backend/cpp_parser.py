"""
Tokenizer and recursive-descent parser for the C++ subset Logic Lens accepts.

The language is line oriented: one statement per line, a block opens with ``{``
at the end of its header line and closes with ``}``. Line numbers are kept on
every statement because pauses are reported per source line.

A statement that cannot be parsed does not abort the whole program. It becomes
an ``Unsupported`` node plus a ``Diagnostic`` and parsing carries on with the
next line.
"""

import ast
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from errors import TranspileError

TOKEN_SPEC = [
    ("NEWLINE", r"\n"),
    ("SKIP", r"[ \t\r\f\v]+"),
    ("LINE_COMMENT", r"//[^\n]*"),
    ("BLOCK_COMMENT", r"/\*[\s\S]*?\*/"),
    ("DIRECTIVE", r"#[^\n]*"),
    ("STRING", r'"(?:\\.|[^"\\\n])*"'),
    ("CHAR", r"'(?:\\.|[^'\\\n])'"),
    ("NUMBER", r"0[xX][0-9a-fA-F]+[uUlL]*|(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?[fFuUlL]*"),
    ("IDENT", r"[A-Za-z_]\w*"),
    ("OP", r"->|<<=|>>=|<<|>>|<=|>=|==|!=|&&|\|\||\+\+|--|\+=|-=|\*=|/=|%=|&=|\|=|\^=|::"
           r"|[-+*/%<>=!&|^~?:;,.()\[\]{}]"),
    ("ERROR", r"."),
]
TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_SPEC))

PRIMITIVE_TYPES = {
    "int", "float", "double", "long", "short", "char", "bool", "string", "void",
    "auto", "size_t", "unsigned", "signed",
}
TYPE_MODIFIERS = {"const", "static", "unsigned", "signed", "volatile", "struct", "class",
                  "long", "short", "inline", "extern"}
CONTAINER_TYPES = {"stack": "Stack", "queue": "Queue"}
UNSUPPORTED_TEMPLATES = {"vector", "map", "set", "unordered_map", "unordered_set", "pair",
                         "deque", "list", "priority_queue", "array"}
ASSIGN_OPS = {"=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>="}
BINARY_LEVELS = [
    ("||",),
    ("&&",),
    ("|",),
    ("^",),
    ("&",),
    ("==", "!="),
    ("<", "<=", ">", ">="),
    ("<<", ">>"),
    ("+", "-"),
    ("*", "/", "%"),
]
SHIFT_LEVEL = 7
HEADER_RE = re.compile(r"(if|else|for|while)\b")


@dataclass
class Token:
    kind: str
    value: str
    line: int


def tokenize(source: str) -> List[Token]:
    tokens = []
    line = 1
    for match in TOKEN_RE.finditer(source):
        kind = match.lastgroup
        value = match.group()
        if kind == "NEWLINE":
            tokens.append(Token(kind, value, line))
            line += 1
        elif kind == "BLOCK_COMMENT":
            # keep the line structure of whatever follows the comment
            for _ in range(value.count("\n")):
                tokens.append(Token("NEWLINE", "\n", line))
                line += 1
        elif kind in ("SKIP", "LINE_COMMENT"):
            continue
        else:
            tokens.append(Token(kind, value, line))
    tokens.append(Token("EOF", "", line))
    return tokens


# --- Tree -----------------------------------------------------------------

@dataclass
class Name:
    name: str


@dataclass
class Literal:
    value: Any


@dataclass
class CharLiteral:
    value: str


@dataclass
class BinOp:
    op: str
    left: Any
    right: Any


@dataclass
class UnaryOp:
    op: str
    operand: Any


@dataclass
class Ternary:
    cond: Any
    if_true: Any
    if_false: Any


@dataclass
class Call:
    name: str
    args: List[Any]


@dataclass
class MethodCall:
    target: Any
    method: str
    args: List[Any]


@dataclass
class Index:
    target: Any
    index: Any


@dataclass
class FieldGet:
    target: Any
    field: str


@dataclass
class New:
    type_name: str


@dataclass
class Sizeof:
    type_name: str


@dataclass
class Cast:
    type_name: str
    pointer: bool
    operand: Any


@dataclass
class InitList:
    elements: List[Any]


@dataclass
class TypeSpec:
    name: str
    template: Optional[str] = None
    pointer: int = 0
    reference: bool = False

    def __str__(self):
        text = self.name
        if self.template is not None:
            text += f"<{self.template}>"
        return text + "*" * self.pointer + ("&" if self.reference else "")


@dataclass
class Declarator:
    name: str
    init: Any = None
    array: bool = False
    size: Any = None


@dataclass
class Block:
    statements: List[Any]
    close_line: Optional[int] = None  # set when the closing brace sits alone on its line


@dataclass
class ContainerDecl:
    line: int
    kind: str
    names: List[str]


@dataclass
class VarDecl:
    line: int
    type: TypeSpec
    declarators: List[Declarator]


@dataclass
class Assign:
    line: int
    target: Any
    op: str
    value: Any


@dataclass
class IncDec:
    line: int
    target: Any
    op: str


@dataclass
class ExprStmt:
    line: int
    expr: Any


@dataclass
class Print:
    line: int
    args: List[Any]
    newline: bool


@dataclass
class Else:
    line: int
    body: Block
    header_pause: bool


@dataclass
class If:
    line: int
    cond: Any
    body: Block
    orelse: Optional[Union["If", Else]]
    header_pause: bool


@dataclass
class While:
    line: int
    cond: Any
    body: Block
    header_pause: bool


@dataclass
class For:
    line: int
    init: Any
    cond: Any
    step: Any
    body: Block
    header_pause: bool


@dataclass
class RangeFor:
    line: int
    var: str
    iterable: Any
    body: Block
    header_pause: bool


@dataclass
class Return:
    line: int
    value: Any = None


@dataclass
class Break:
    line: int


@dataclass
class Continue:
    line: int


@dataclass
class BlockStmt:
    line: int
    block: Block


@dataclass
class EmptyStmt:
    line: int


@dataclass
class Unsupported:
    line: int
    text: str
    reason: str


@dataclass
class Param:
    name: str
    default: Any = None


@dataclass
class FunctionDef:
    line: int
    name: str
    params: List[Param]
    body: Block
    return_type: TypeSpec


@dataclass
class StructField:
    name: str
    type: str


@dataclass
class StructDef:
    line: int
    name: str
    fields: List[StructField]


@dataclass
class Diagnostic:
    line: int
    message: str
    text: str


@dataclass
class Program:
    functions: List[FunctionDef] = field(default_factory=list)
    statements: List[Any] = field(default_factory=list)
    structs: List[StructDef] = field(default_factory=list)
    prototypes: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


# --- Parser ---------------------------------------------------------------

class Parser:
    def __init__(self, source: str):
        self.source_lines = source.split("\n")
        self.tokens = tokenize(source)
        self.pos = 0
        self.program = Program()

    # token helpers

    def peek(self, offset=0) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "EOF":
            self.pos += 1
        return token

    def at(self, value, offset=0) -> bool:
        token = self.peek(offset)
        return token.kind in ("OP", "IDENT") and token.value == value

    def expect(self, value) -> Token:
        token = self.peek()
        if not self.at(value):
            found = "end of line" if token.kind in ("NEWLINE", "EOF") else repr(token.value)
            raise TranspileError(f"expected '{value}' but found {found}", token.line)
        return self.advance()

    def expect_ident(self) -> Token:
        token = self.peek()
        if token.kind != "IDENT":
            raise TranspileError(f"expected a name but found {token.value!r}", token.line)
        return self.advance()

    def skip_newlines(self):
        while self.peek().kind == "NEWLINE":
            self.advance()

    def next_significant(self, offset=0) -> Token:
        while self.peek(offset).kind == "NEWLINE":
            offset += 1
        return self.peek(offset)

    def line_text(self, line: int) -> str:
        if 1 <= line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return ""

    def starts_header(self, line: int) -> bool:
        return bool(HEADER_RE.match(self.line_text(line).strip()))

    def is_brace_line(self, line: int) -> bool:
        code = re.sub(r"//.*", "", self.line_text(line)).strip()
        return code in ("}", "};")

    def diagnose(self, line, message, text=None):
        if text is None:
            text = self.line_text(line).strip()
        self.program.diagnostics.append(Diagnostic(line=line, message=message, text=text))

    # program structure

    def parse_program(self) -> Program:
        while True:
            self.skip_newlines()
            token = self.peek()
            if token.kind == "EOF":
                break
            if self.at("}"):
                self.advance()
                self.diagnose(token.line, "unmatched '}'")
                continue
            statement = self.parse_guarded(top_level=True)
            if statement is not None:
                self.program.statements.append(statement)
        return self.program

    def parse_guarded(self, top_level=False):
        start = self.pos
        line = self.peek().line
        try:
            return self.parse_statement(top_level)
        except TranspileError as exc:
            self.pos = start
            text = self.skip_construct()
            self.diagnose(line, exc.reason, text)
            return Unsupported(line=line, text=text, reason=exc.reason)

    def skip_construct(self) -> str:
        """Skip the rest of a bad statement, including any block it opens."""
        first = self.peek().line
        last = first
        depth = 0
        consumed = False
        while True:
            token = self.peek()
            if token.kind == "EOF":
                break
            if consumed and depth == 0 and (token.kind == "NEWLINE" or self.at("}")):
                # a '}' at depth 0 belongs to the enclosing block
                break
            if self.at("{"):
                depth += 1
            elif self.at("}") and depth > 0:
                depth -= 1
            if token.kind != "NEWLINE":
                last = token.line
            self.advance()
            consumed = True
        lines = [self.line_text(n).strip() for n in range(first, last + 1)]
        return "\n".join(text for text in lines if text)

    def parse_block(self) -> Block:
        self.skip_newlines()
        self.expect("{")
        statements = []
        while True:
            self.skip_newlines()
            token = self.peek()
            if token.kind == "EOF":
                self.diagnose(token.line, "missing '}' at end of input", "")
                return Block(statements)
            if self.at("}"):
                close = self.advance()
                if self.at(";") and self.peek().line == close.line:
                    self.advance()
                close_line = close.line if self.is_brace_line(close.line) else None
                return Block(statements, close_line)
            statement = self.parse_guarded()
            if statement is not None:
                statements.append(statement)

    def parse_body(self):
        """Body of a control statement: a braced block or one statement."""
        if self.next_significant().value == "{" and self.next_significant().kind == "OP":
            return self.parse_block()
        self.skip_newlines()
        statement = self.parse_guarded()
        return Block([statement] if statement is not None else [])

    # statements

    def parse_statement(self, top_level=False):
        token = self.peek()
        line = token.line
        if token.kind == "DIRECTIVE":
            self.advance()
            if not re.match(r"#\s*include\b", token.value):
                self.diagnose(line, "preprocessor directive ignored", token.value)
            return None
        if token.kind == "ERROR":
            raise TranspileError(f"unexpected character {token.value!r}", line)
        if self.at("{"):
            if top_level:
                raise TranspileError("a block needs to be inside a function", line)
            return BlockStmt(line=line, block=self.parse_block())
        if self.at(";"):
            self.advance()
            return EmptyStmt(line=line)
        if token.kind == "IDENT":
            word = token.value
            if word == "using":
                return self.parse_using()
            if word in ("struct", "class") and self.peek(1).kind == "IDENT":
                if self.next_significant(2).value == "{":
                    return self.parse_struct()
                if self.at(";", 2):
                    # forward declaration
                    self.pos += 3
                    return None
            if word == "if":
                return self.parse_if()
            if word == "while":
                return self.parse_while()
            if word == "for":
                return self.parse_for()
            if word in ("do", "switch", "goto", "try", "template", "typedef"):
                raise TranspileError(f"'{word}' is not supported", line)
            if word == "return":
                return self.parse_return()
            if word == "break":
                self.advance()
                self.expect(";")
                return Break(line=line)
            if word == "continue":
                self.advance()
                self.expect(";")
                return Continue(line=line)
            if word == "delete":
                return self.parse_delete()
            stream = self.stream_name()
            if stream == "cout":
                return self.parse_cout()
            if stream in ("cin", "cerr"):
                raise TranspileError(f"'{stream}' is not supported", line)
        declaration = self.try_declaration(top_level)
        if declaration is not False:
            return declaration
        statement = self.parse_simple_statement()
        self.expect(";")
        return statement

    def stream_name(self) -> Optional[str]:
        if self.at("std") and self.at("::", 1):
            return self.peek(2).value
        return self.peek().value

    def parse_using(self):
        line = self.advance().line
        if not self.at("namespace"):
            raise TranspileError("only 'using namespace' is supported", line)
        while not self.at(";"):
            if self.peek().kind in ("NEWLINE", "EOF"):
                raise TranspileError("expected ';'", line)
            self.advance()
        self.advance()
        return None

    def parse_struct(self):
        line = self.advance().line
        name = self.expect_ident().value
        self.skip_newlines()
        self.expect("{")
        fields = []
        while True:
            self.skip_newlines()
            token = self.peek()
            if token.kind == "EOF":
                self.diagnose(token.line, f"struct {name} is missing its closing '}}'", "")
                break
            if self.at("}"):
                self.advance()
                if self.peek().kind == "IDENT":
                    self.advance()
                if self.at(";"):
                    self.advance()
                break
            if token.value in ("public", "private", "protected") and self.at(":", 1):
                self.advance()
                self.advance()
                continue
            start = self.pos
            try:
                fields.extend(self.parse_struct_fields())
            except TranspileError:
                self.pos = start
                text = self.skip_construct()
                self.diagnose(token.line, f"member of struct {name} ignored", text)
        self.program.structs.append(StructDef(line=line, name=name, fields=fields))
        return None

    def parse_struct_fields(self):
        type_spec = self.parse_type()
        if type_spec is None:
            raise TranspileError("expected a field declaration")
        fields = []
        while True:
            while self.at("*"):
                self.advance()
            name = self.expect_ident().value
            if self.at("["):
                self.advance()
                if not self.at("]"):
                    self.parse_expression()
                self.expect("]")
            if self.at("="):
                self.advance()
                self.parse_initializer()
            fields.append(StructField(name=name, type=str(type_spec)))
            if not self.at(","):
                break
            self.advance()
        self.expect(";")
        return fields

    def parse_if(self) -> If:
        token = self.advance()
        self.expect("(")
        cond = self.parse_expression()
        self.expect(")")
        body = self.parse_body()
        orelse = None
        save = self.pos
        self.skip_newlines()
        if self.at("else"):
            else_token = self.advance()
            if self.at("if"):
                orelse = self.parse_if()
                orelse.line = else_token.line
                orelse.header_pause = orelse.header_pause and self.starts_header(else_token.line)
            else:
                else_body = self.parse_body()
                orelse = Else(line=else_token.line, body=else_body,
                              header_pause=self.starts_header(else_token.line))
        else:
            self.pos = save
        return If(line=token.line, cond=cond, body=body, orelse=orelse,
                  header_pause=self.starts_header(token.line))

    def parse_while(self) -> While:
        token = self.advance()
        self.expect("(")
        cond = self.parse_expression()
        self.expect(")")
        body = self.parse_body()
        return While(line=token.line, cond=cond, body=body,
                     header_pause=self.starts_header(token.line))

    def parse_for(self):
        token = self.advance()
        self.expect("(")
        start = self.pos
        type_spec = self.parse_type()
        if type_spec is not None and self.peek().kind == "IDENT" and self.at(":", 1):
            var = self.advance().value
            self.advance()
            iterable = self.parse_expression()
            self.expect(")")
            body = self.parse_body()
            return RangeFor(line=token.line, var=var, iterable=iterable, body=body,
                            header_pause=self.starts_header(token.line))
        self.pos = start

        init = None
        if self.at(";"):
            self.advance()
        else:
            init = self.try_declaration(False)
            if init is False:
                init = self.parse_simple_statement()
                self.expect(";")
        cond = None
        if not self.at(";"):
            cond = self.parse_expression()
        self.expect(";")
        step = None
        if not self.at(")"):
            step = self.parse_simple_statement()
        self.expect(")")
        body = self.parse_body()
        return For(line=token.line, init=init, cond=cond, step=step, body=body,
                   header_pause=self.starts_header(token.line))

    def parse_return(self) -> Return:
        line = self.advance().line
        value = None
        if not self.at(";"):
            value = self.parse_expression()
        self.expect(";")
        return Return(line=line, value=value)

    def parse_delete(self) -> ExprStmt:
        line = self.advance().line
        if self.at("["):
            raise TranspileError("delete[] is not supported", line)
        target = self.parse_expression()
        self.expect(";")
        return ExprStmt(line=line, expr=Call(name="free", args=[target]))

    def parse_cout(self) -> Print:
        line = self.peek().line
        if self.at("std"):
            self.advance()
            self.advance()
        self.advance()
        items = []
        while self.at("<<"):
            self.advance()
            items.append(self.parse_binary(SHIFT_LEVEL + 1))
        if not items:
            raise TranspileError("expected '<<' after cout", line)
        self.expect(";")
        newline = False
        if is_endl(items[-1]):
            items.pop()
            newline = True
        items = [Literal("\n") if is_endl(item) else item for item in items]
        return Print(line=line, args=items, newline=newline)

    def parse_simple_statement(self):
        """Assignment, increment or expression, without the trailing ';'."""
        line = self.peek().line
        if self.at("++") or self.at("--"):
            op = self.advance().value
            target = self.parse_postfix()
            check_assignable(target, line)
            return IncDec(line=line, target=target, op=op)
        expr = self.parse_expression()
        token = self.peek()
        if token.kind == "OP" and token.value in ASSIGN_OPS:
            self.advance()
            check_assignable(expr, line)
            value = self.parse_expression()
            return Assign(line=line, target=expr, op=token.value, value=value)
        if self.at("++") or self.at("--"):
            op = self.advance().value
            check_assignable(expr, line)
            return IncDec(line=line, target=expr, op=op)
        return ExprStmt(line=line, expr=expr)

    # declarations

    def parse_type(self) -> Optional[TypeSpec]:
        """Parse a type if one starts here; restores the position otherwise."""
        start = self.pos
        words = []
        while self.peek().kind == "IDENT" and self.peek().value in TYPE_MODIFIERS:
            words.append(self.advance().value)
        if self.peek().kind != "IDENT":
            self.pos = start
            return None
        implied = [w for w in words if w in ("unsigned", "signed", "long", "short")]
        if implied and self.peek(1).kind == "OP" and self.peek(1).value in ("=", ";", "[", ",", "(", ")"):
            # 'unsigned x' / 'long n': the next word is the variable name
            name = implied[-1]
        else:
            name = self.advance().value
            while self.at("::") and self.peek(1).kind == "IDENT":
                self.advance()
                name = self.advance().value
        type_spec = TypeSpec(name=name)
        if self.at("<"):
            template = self.parse_template_args()
            if template is None:
                self.pos = start
                return None
            type_spec.template = template
        while True:
            if self.at("*"):
                self.advance()
                type_spec.pointer += 1
            elif self.at("&"):
                self.advance()
                type_spec.reference = True
            elif self.at("const"):
                self.advance()
            else:
                break
        return type_spec

    def parse_template_args(self) -> Optional[str]:
        self.advance()
        depth = 1
        parts = []
        while depth:
            token = self.peek()
            if token.kind in ("NEWLINE", "EOF") or token.value in (";", "{", "(", ")", "="):
                return None
            self.advance()
            if token.value == "<":
                depth += 1
            elif token.value == ">":
                depth -= 1
            elif token.value == ">>":
                depth -= 2
                if depth < 0:
                    return None
            if depth:
                parts.append(token.value)
        return "".join(parts) or None

    def try_declaration(self, top_level):
        """Parse a declaration or function definition, or return False."""
        start = self.pos
        line = self.peek().line
        type_spec = self.parse_type()
        if type_spec is None or self.peek().kind != "IDENT":
            self.pos = start
            return False
        follow = self.peek(1)
        if follow.kind != "OP" or follow.value not in ("=", ";", "[", ",", "("):
            self.pos = start
            return False

        if follow.value == "(":
            if not top_level:
                raise TranspileError("functions can only be declared at the top level", line)
            return self.parse_function(type_spec, line)

        if type_spec.template is not None or type_spec.name in CONTAINER_TYPES:
            return self.parse_container_decl(type_spec, line)

        declarators = []
        while True:
            while self.at("*"):
                self.advance()
            name = self.expect_ident().value
            declarator = Declarator(name=name)
            if self.at("["):
                self.advance()
                declarator.array = True
                if not self.at("]"):
                    declarator.size = self.parse_expression()
                self.expect("]")
            if self.at("="):
                self.advance()
                declarator.init = self.parse_initializer()
                if isinstance(declarator.init, InitList) and not declarator.array:
                    raise TranspileError("brace initialisers are only supported for arrays", line)
            declarators.append(declarator)
            if not self.at(","):
                break
            self.advance()
        self.expect(";")
        return VarDecl(line=line, type=type_spec, declarators=declarators)

    def parse_container_decl(self, type_spec, line):
        kind = CONTAINER_TYPES.get(type_spec.name)
        if kind is None:
            if type_spec.name in UNSUPPORTED_TEMPLATES:
                raise TranspileError(f"std::{type_spec.name} is not supported", line)
            raise TranspileError(f"unknown template type '{type_spec}'", line)
        if type_spec.pointer:
            raise TranspileError(f"pointers to {type_spec.name} are not supported", line)
        names = []
        while True:
            names.append(self.expect_ident().value)
            if not self.at(","):
                break
            self.advance()
        if self.at("="):
            raise TranspileError(f"{type_spec.name} cannot be initialised on declaration", line)
        self.expect(";")
        return ContainerDecl(line=line, kind=kind, names=names)

    def parse_function(self, return_type, line):
        name = self.advance().value
        params = self.parse_params()
        if self.at(";"):
            self.advance()
            self.program.prototypes.append(name)
            return None
        body = self.parse_block()
        function = FunctionDef(line=line, name=name, params=params, body=body,
                               return_type=return_type)
        self.program.functions.append(function)
        return None

    def parse_params(self) -> List[Param]:
        self.expect("(")
        params = []
        if self.at(")"):
            self.advance()
            return params
        if self.at("void") and self.at(")", 1):
            self.advance()
            self.advance()
            return params
        while True:
            type_spec = self.parse_type()
            if type_spec is None:
                raise TranspileError("expected a parameter", self.peek().line)
            if self.peek().kind == "IDENT":
                name = self.advance().value
            elif type_spec.name in PRIMITIVE_TYPES or type_spec.pointer or type_spec.template:
                name = None  # unnamed parameter in a prototype
            else:
                name = type_spec.name  # untyped parameter
            if self.at("["):
                self.advance()
                self.expect("]")
            default = None
            if self.at("="):
                self.advance()
                default = self.parse_expression()
            params.append(Param(name=name, default=default))
            if self.at(","):
                self.advance()
                continue
            self.expect(")")
            return params

    def parse_initializer(self):
        if not self.at("{"):
            return self.parse_expression()
        line = self.advance().line
        elements = []
        while not self.at("}"):
            if self.at("{"):
                raise TranspileError("nested brace initialisers are not supported", line)
            elements.append(self.parse_expression())
            if self.at(","):
                self.advance()
            elif not self.at("}"):
                raise TranspileError("expected ',' or '}' in initialiser", line)
        self.advance()
        return InitList(elements=elements)

    # expressions

    def parse_expression(self):
        cond = self.parse_binary(0)
        if self.at("?"):
            self.advance()
            if_true = self.parse_expression()
            self.expect(":")
            if_false = self.parse_expression()
            return Ternary(cond=cond, if_true=if_true, if_false=if_false)
        return cond

    def parse_binary(self, level):
        if level == len(BINARY_LEVELS):
            return self.parse_unary()
        left = self.parse_binary(level + 1)
        while self.peek().kind == "OP" and self.peek().value in BINARY_LEVELS[level]:
            op = self.advance().value
            right = self.parse_binary(level + 1)
            left = BinOp(op=op, left=left, right=right)
        return left

    def parse_unary(self):
        token = self.peek()
        if token.kind == "OP":
            if token.value in ("!", "-", "+", "~"):
                self.advance()
                return UnaryOp(op=token.value, operand=self.parse_unary())
            if token.value == "*":
                raise TranspileError("dereferencing with '*' is not supported, use '->'", token.line)
            if token.value == "&":
                raise TranspileError("taking an address with '&' is not supported", token.line)
            if token.value in ("++", "--"):
                raise TranspileError(f"'{token.value}' inside an expression is not supported",
                                     token.line)
            if token.value == "(":
                cast = self.try_cast()
                if cast is not None:
                    return cast
        if self.at("sizeof"):
            self.advance()
            self.expect("(")
            type_spec = self.parse_type()
            if type_spec is None:
                raise TranspileError("expected a type in sizeof", token.line)
            self.expect(")")
            return Sizeof(type_name=type_spec.name if not type_spec.pointer else "pointer")
        if self.at("new"):
            self.advance()
            type_name = self.expect_ident().value
            while self.at("::"):
                self.advance()
                type_name = self.expect_ident().value
            if self.at("["):
                raise TranspileError("array new is not supported", token.line)
            if self.at("(") and self.parse_args():
                raise TranspileError("constructor arguments are not supported", token.line)
            return New(type_name=type_name)
        return self.parse_postfix()

    def try_cast(self):
        start = self.pos
        self.advance()
        type_spec = self.parse_type()
        if type_spec is not None and self.at(")") \
                and (type_spec.pointer or type_spec.name in PRIMITIVE_TYPES):
            self.advance()
            return Cast(type_name=type_spec.name, pointer=bool(type_spec.pointer),
                        operand=self.parse_unary())
        self.pos = start
        return None

    def parse_postfix(self):
        expr = self.parse_primary()
        while True:
            token = self.peek()
            if self.at("("):
                if not isinstance(expr, Name):
                    raise TranspileError("only named functions can be called", token.line)
                expr = Call(name=expr.name, args=self.parse_args())
            elif self.at("["):
                self.advance()
                index = self.parse_expression()
                self.expect("]")
                expr = Index(target=expr, index=index)
            elif self.at("->"):
                self.advance()
                expr = FieldGet(target=expr, field=self.expect_ident().value)
            elif self.at("."):
                self.advance()
                member = self.expect_ident().value
                if member.startswith("_"):
                    # host object internals stay out of reach
                    raise TranspileError(f"method '{member}' is not available", token.line)
                if not self.at("("):
                    raise TranspileError(f"'.{member}' is only supported for method calls, "
                                         "use '->' for fields", token.line)
                expr = MethodCall(target=expr, method=member, args=self.parse_args())
            else:
                return expr

    def parse_args(self):
        self.expect("(")
        args = []
        while not self.at(")"):
            args.append(self.parse_expression())
            if self.at(","):
                self.advance()
            elif not self.at(")"):
                token = self.peek()
                raise TranspileError(f"expected ',' or ')' but found {token.value!r}", token.line)
        self.advance()
        return args

    def parse_primary(self):
        token = self.peek()
        if token.kind == "NUMBER":
            self.advance()
            return Literal(parse_number(token.value))
        if token.kind == "STRING":
            text = ""
            while self.peek().kind == "STRING":
                text += parse_literal(self.advance())
            return Literal(text)
        if token.kind == "CHAR":
            return CharLiteral(parse_literal(self.advance()))
        if token.kind == "IDENT":
            self.advance()
            if token.value in ("true", "false"):
                return Literal(token.value == "true")
            if token.value in ("NULL", "nullptr"):
                return Literal(None)
            name = token.value
            while self.at("::"):
                self.advance()
                name = self.expect_ident().value
            return Name(name=name)
        if self.at("("):
            self.advance()
            expr = self.parse_expression()
            self.expect(")")
            return expr
        found = "end of line" if token.kind in ("NEWLINE", "EOF") else repr(token.value)
        raise TranspileError(f"unexpected {found}", token.line)


def parse_number(text: str):
    if text[:2].lower() == "0x":
        return int(text.rstrip("uUlL"), 16)
    text = text.rstrip("uUlL")
    if any(c in text for c in ".eE"):
        return float(text.rstrip("fF"))
    return int(text.rstrip("fF"))


def parse_literal(token: Token) -> str:
    try:
        return ast.literal_eval(token.value)
    except (ValueError, SyntaxError) as exc:
        raise TranspileError(f"bad literal {token.value}", token.line) from exc


def is_endl(expr) -> bool:
    return isinstance(expr, Name) and expr.name == "endl"


def check_assignable(target, line):
    if not isinstance(target, (Name, Index, FieldGet)):
        raise TranspileError("left side of an assignment must be a variable, "
                             "an array element or a '->' field", line)


def parse(source: str) -> Program:
    return Parser(source).parse_program()
