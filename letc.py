import os
import re
import subprocess
import sys

from ply import yacc
from lexer import tokens, new_lexer
from compiler import *

# binding names of this shape could collide with generated slot names
SLOT_NAME = re.compile(r'_(%s)_\d+_\d+$' % '|'.join(ARITH_OPS))


def p_program(p):
    r'''program : program statement
               | empty'''
    if len(p) == 2:
        p[0] = []
    else:
        p[1].append(p[2])
        p[0] = p[1]


def p_empty(p):
    r'''empty :'''
    pass


def p_let_statement(p):
    r'''statement : LET IDENT EQUAL expr SEMICOLON'''
    names = p.parser.names
    if p[2] in names:
        fatal("name %s already defined, line %d" % (p[2], p.lineno(2)))
    if SLOT_NAME.search(p[2]):
        fatal("name %s is reserved for generated slots, line %d" % (p[2], p.lineno(2)))
    names.add(p[2])
    p[0] = Bind(p[2], p[4])


def p_exit_literal(p):
    r'''statement : EXIT NUMBER SEMICOLON'''
    p[0] = Terminate(Token(LITERAL, None, str(p[2]), p.lineno(2)))


def p_exit_ident(p):
    r'''statement : EXIT IDENT SEMICOLON'''
    if p[2] not in p.parser.names:
        fatal("unknown identifier %s, line %d" % (p[2], p.lineno(2)))
    p[0] = Terminate(Token(IDENTIFIER, None, p[2], p.lineno(2)))


def p_binary_expr(p):
    r'''expr : expr PLUS expr
             | expr MINUS expr
             | expr ASTERIX expr'''
    op = {'PLUS': PLUS, 'MINUS': MINUS, 'ASTERIX': MULTIPLY}[p.slice[2].type]
    p[0] = BinaryOp(p[1], Token(OPERATOR, op, p[2], p.lineno(2)), p[3])


def p_literal_expr(p):
    r'''expr : NUMBER'''
    p[0] = Literal(p[1])


def p_error(t):
    if t is None:
        fatal("unexpected end of input")
    fatal("syntax error at %s(%s), line %d" % (t.value, t.type, t.lineno))


# token precedence rules for the parser
# tokens are listed from lowest to highest precedence
precedence = (
    ('left', 'PLUS', 'MINUS'),
    ('left', 'ASTERIX'),
)

parser = yacc.yacc(debug=False, write_tables=False)


def parse(text):
    """Parse source text into a list of Bind and Terminate statements"""
    parser.names = set()
    return parser.parse(text, lexer=new_lexer())


class ExpressionLowerer(object):
    """Flattens binding expressions into slots.

       Every literal leaf gets one slot named after its binding, the
       operator applied to it, that operator's occurrence count and the
       leaf's position in the current run of that operator.  The last
       operator, the occurrence counters and the chain index live for
       the whole compile pass, not per binding.

       Nodes are visited right operand first.  Both operands of a
       multiplication are tagged Multiply whatever the surrounding
       context, and each product starts a new Multiply run that records
       the additive operator it is folded in with."""

    def __init__(self, slots, declare=None):
        self.slots = slots
        self.declare = declare
        self.last_op = None
        self.occurrences = {}
        self.chain = 0

    def lower(self, binding, expr):
        """Allocate the slots of one binding and return them"""
        if isinstance(expr, Literal):
            return [self.allocate(binding, expr.value, None, binding)]

        allocated = []
        work = [(expr, PLUS, PLUS)]
        while work:
            node, context, combine = work.pop()
            if isinstance(node, Literal):
                allocated.append(self.lower_leaf(binding, node, context, combine))
                continue
            if not isinstance(node, BinaryOp):
                fatal("unexpected expression node %r in binding %s" % (node, binding))

            op = self.arith_op(node.operator)
            if op == MULTIPLY:
                if context != MULTIPLY:
                    self.last_op = None
                    combine = context
                work.append((node.left, MULTIPLY, combine))
                work.append((node.right, MULTIPLY, combine))
            else:
                if context == MULTIPLY:
                    fatal("cannot lower %s inside a product in binding %s" % (op, binding))
                work.append((node.left, context, combine))
                work.append((node.right, op, combine))
        return allocated

    def lower_leaf(self, binding, node, op, combine):
        if op == self.last_op:
            self.chain += 1
        else:
            self.chain = 0
            self.occurrences[op] = self.occurrences.get(op, 0) + 1
            self.last_op = op
        occurrence = self.occurrences[op]
        name = "%s_%s_%d_%d" % (binding, op, occurrence, self.chain)
        return self.allocate(name, node.value, op, binding, combine, occurrence)

    def allocate(self, name, value, op, binding, combine=PLUS, occurrence=0):
        slot = self.slots.allocate(name, value, op, binding=binding,
                                   combine=combine, occurrence=occurrence)
        if self.declare is not None:
            self.declare(slot)
        return slot

    @staticmethod
    def arith_op(token):
        if token.op not in ARITH_OPS:
            fatal("operator %s is not arithmetic" % token.op)
        return token.op


class StatementEmitter(object):
    """Single pass over the statement list, writing the assembly buffer."""

    FOLD = {PLUS: 'add', MINUS: 'sub'}

    def __init__(self, entry="_start", verbose=False):
        self.slots = SlotTable()
        self.entry = entry
        self.asm = AssemblyBuffer(entry)
        self.lowerer = ExpressionLowerer(self.slots, self.declare)
        self.verbose = verbose

    def declare(self, slot):
        self.asm.declare(slot)
        if self.verbose:
            print("declare slot:", slot)

    def emit(self, statements):
        for stmt in statements:
            if isinstance(stmt, Bind):
                if stmt.name == self.entry:
                    fatal("name %s clashes with the entry label" % stmt.name)
                self.lowerer.lower(stmt.name, stmt.expression)
            elif isinstance(stmt, Terminate):
                self.emit_terminate(stmt.operand)
            else:
                fatal("unexpected statement %r" % (stmt,))
        return self.asm.output()

    def emit_terminate(self, operand):
        if self.verbose:
            print("exit:", operand.value)
        if operand.kind == IDENTIFIER:
            slots = self.slots.lookup(operand.value)
        elif operand.kind == LITERAL:
            if int(operand.value) >= (1 << 64):
                fatal("constant too large %s" % operand.value)
            slots = []
        else:
            fatal("exit operand must be a literal or identifier, got %s" % operand.kind)

        if not slots:
            if operand.kind == IDENTIFIER:
                code = ["mov %s, $%s" % (DEST, operand.value)]
            else:
                code = ["mov %s, %s" % (DEST, operand.value)]
        elif len(slots) == 1 and slots[0].operator is None:
            code = [load(DEST, slots[0])]
        else:
            code = self.reduce(sorted(slots, key=lambda slot: slot.name))
        code.extend(EXIT_SEQUENCE)
        self.asm.emit(code)

    def reduce(self, slots):
        """Code computing the combined value of sorted slots into the
           exit status register.  Products are built in the first
           scratch register and flushed when their run ends."""
        code = ["xor %s, %s  ; zero exit status" % (DEST, DEST)]
        pending = False
        for n in range(len(slots)):
            slot = slots[n]
            if slot.operator is None:
                code.append(load(DEST, slot))
                break
            elif slot.operator == PLUS:
                code.extend(accumulate('add', slot))
            elif slot.operator == MINUS:
                code.extend(accumulate('sub', slot))
            elif slot.operator == MULTIPLY:
                if not pending:
                    code.append(load(SCRATCH[0], slot))
                    pending = True
                else:
                    code.append(load(SCRATCH[1], slot))
                    code.append("imul %s, %s" % SCRATCH)
                if self.run_ends(slots, n):
                    if slot.combine not in self.FOLD:
                        fatal("cannot fold product %s with %s" % (slot.name, slot.combine))
                    code.append("%s %s, %s  ; flush product" % (self.FOLD[slot.combine], DEST, SCRATCH[0]))
                    pending = False
            else:
                fatal("operator %s in slot %s cannot be reduced" % (slot.operator, slot.name))
        return code

    @staticmethod
    def run_ends(slots, n):
        if n + 1 == len(slots):
            return True
        nxt = slots[n + 1]
        return nxt.operator != slots[n].operator or nxt.occurrence != slots[n].occurrence


def compile_statements(statements, entry="_start", verbose=False):
    """Lower a statement list to NASM text"""
    emitter = StatementEmitter(entry, verbose)
    return emitter.emit(statements)


def compile_source(text, entry="_start", verbose=False):
    """Compile source text to NASM text"""
    return compile_statements(parse(text), entry, verbose)


def run_tool(args):
    try:
        subprocess.run(args, check=True)
    except OSError as e:
        fatal("cannot run %s: %s" % (args[0], e))
    except subprocess.CalledProcessError as e:
        fatal("%s exited with status %d" % (args[0], e.returncode))


def assemble(asmName, outName, assembler="nasm", linker="ld"):
    """Assemble and link the .asm file into an executable, removing the
       intermediate files afterwards"""
    objName = "%s.o" % outName
    run_tool([assembler, "-felf64", asmName, "-o", objName])
    run_tool([linker, objName, "-o", outName])
    os.remove(objName)
    os.remove(asmName)


def main(argv=None):

    from argparse import ArgumentParser

    argparser = ArgumentParser(prog="letc")
    argparser.add_argument("infile", type=str, nargs="?",
                            help="input source file")
    argparser.add_argument("-f", "--file-path", action="store", type=str,
                            help="input source file, in place of INFILE")
    argparser.add_argument("-o", "--output", "--output-path", dest="output", action="store",
                            type=str, required=True,
                            help="output path, .asm is appended for the assembly file")
    argparser.add_argument("--no-assemble", action="store_true",
                            help="disable the assembler, write the assembly file to disk")
    argparser.add_argument("--assembler", action="store", type=str, default="nasm",
                            help="assembler command")
    argparser.add_argument("--linker", action="store", type=str, default="ld",
                            help="linker command")
    argparser.add_argument("-e", "--entry", action="store", type=str, default="_start",
                            help="program entry label")
    argparser.add_argument("-v", "--verbose", action="store_true",
                            help="print slots and exit statements as they are compiled")
    args = argparser.parse_args(argv)
    infile = args.infile or args.file_path
    if infile is None:
        argparser.error("an input file is required")

    asmName = "%s.asm" % args.output
    try:
        try:
            with open(infile, "rt") as inFile:
                text = inFile.read()
        except OSError as e:
            fatal("cannot read %s: %s" % (infile, e.strerror))

        asm = compile_source(text, args.entry, args.verbose)

        with open(asmName, "wt", encoding="utf-8") as outFile:
            outFile.write(asm)

        if not args.no_assemble:
            assemble(asmName, args.output, args.assembler, args.linker)
    except CompileError as e:
        print("ERROR:", e.msg)
        return 1

    print("Compilation successful. File outputted at: %s" %
          (asmName if args.no_assemble else args.output))
    return 0


if __name__ == '__main__':
    sys.exit(main())
