

# token kinds
LITERAL = 'literal'
IDENTIFIER = 'identifier'
OPERATOR = 'operator'
KEYWORD = 'keyword'
SEPARATOR = 'separator'

# operator kinds, also used verbatim in generated slot names
PLUS = 'Plus'
MINUS = 'Minus'
MULTIPLY = 'Multiply'
EQUALS = 'Equals'

ARITH_OPS = (PLUS, MINUS, MULTIPLY)

# exit status register and the two multiplication scratch registers
DEST = 'rdi'
SCRATCH = ('rax', 'rbx')

DATA_DIRECTIVES = {8: 'db', 16: 'dw', 32: 'dd', 64: 'dq'}
SIZE_NAMES = {8: 'byte', 16: 'word', 32: 'dword', 64: 'qword'}
REG32 = {'rax': 'eax', 'rbx': 'ebx', 'rdi': 'edi'}

EXIT_SEQUENCE = ("mov rax, 60  ; sys_exit",
                 "syscall")


class CompileError(Exception):

    def __init__(self, msg):
        Exception.__init__(self, msg)
        self.msg = msg


class Token(object):

    def __init__(self, kind, op, value, lineno=0):
        self.kind = kind
        self.op = op
        self.value = value
        self.lineno = lineno

    def __repr__(self):
        if self.op is None:
            return "Token(%s,%r)" % (self.kind, self.value)
        return "Token(%s,%s,%r)" % (self.kind, self.op, self.value)


class Expression(object): pass

class Literal(Expression):

    def __init__(self, value):
        self.value = value

    def __repr__(self):
        return "Literal(%d)" % self.value

class BinaryOp(Expression):

    def __init__(self, left, operator, right):
        self.left = left
        self.operator = operator
        self.right = right

    def __repr__(self):
        return "BinaryOp(%s,%s,%s)" % (self.left, self.operator.op, self.right)


class Statement(object): pass

class Bind(Statement):

    def __init__(self, name, expression):
        self.name = name
        self.expression = expression

    def __repr__(self):
        return "Bind(%s,%s)" % (self.name, self.expression)

class Terminate(Statement):

    def __init__(self, operand):
        self.operand = operand

    def __repr__(self):
        return "Terminate(%s)" % self.operand


class Slot(object):
    """A named data location holding one literal operand.
       operator is None for a binding of a bare literal.  For
       multiplication slots, combine is the additive operator used to
       fold the finished product into the exit status and occurrence
       identifies the product run."""

    def __init__(self, name, value, operator=None, width=64, combine=PLUS, occurrence=0):
        self.name = name
        self.value = value
        self.operator = operator
        self.width = width
        self.combine = combine
        self.occurrence = occurrence

    def __repr__(self):
        return "Slot(%s,%d,%s,%d)" % (self.name, self.value, self.operator, self.width)


class SlotTable(object):
    """All slots of one compile pass, in allocation order, indexed by
       slot name and by the binding that owns them."""

    def __init__(self):
        self.slots = []
        self.names = {}
        self.bindings = {}

    def allocate(self, name, value, operator=None, width=64, binding=None,
                 combine=PLUS, occurrence=0):
        if name in self.names:
            fatal("slot %s already allocated" % name)
        if width not in DATA_DIRECTIVES:
            fatal("unsupported slot width %d" % width)
        if value < 0 or value >= (1 << width):
            fatal("constant too large %d" % value)
        slot = Slot(name, value, operator, width, combine, occurrence)
        self.slots.append(slot)
        self.names[name] = slot
        if binding is None:
            binding = name
        self.bindings.setdefault(binding, []).append(slot)
        return slot

    def lookup(self, binding):
        """Return the slots owned by a binding, in allocation order.
           An unknown binding has no slots."""
        return list(self.bindings.get(binding, ()))

    def __len__(self):
        return len(self.slots)

    def __iter__(self):
        return iter(self.slots)

    def __contains__(self, name):
        return name in self.names


class AssemblyBuffer(object):
    """Header, data section and text section, joined only by output()."""

    def __init__(self, entry="_start"):
        self.header = ["global %s" % entry, "%s:" % entry]
        self.data = ["section .data"]
        self.text = ["section .text", ".entry:"]

    def declare(self, slot):
        self.data.append("$%s\t%s  %d" % (slot.name, DATA_DIRECTIVES[slot.width], slot.value))

    def emit(self, code):
        for line in code:
            self.text.append("\t%s" % line)

    def output(self):
        return "\n".join(self.header + self.data + self.text) + "\n"


def load(reg, slot):
    """Instruction loading a slot, zero extended, into a 64 bit register"""
    if slot.width == 64:
        return "mov %s, qword [$%s]" % (reg, slot.name)
    elif slot.width == 32:
        return "mov %s, dword [$%s]" % (REG32[reg], slot.name)
    else:
        return "movzx %s, %s [$%s]" % (reg, SIZE_NAMES[slot.width], slot.name)


def accumulate(instr, slot):
    """Code applying add or sub of a slot to the exit status register"""
    if slot.width == 64:
        return ["%s %s, qword [$%s]" % (instr, DEST, slot.name)]
    return [load(SCRATCH[0], slot),
            "%s %s, %s" % (instr, DEST, SCRATCH[0])]


def fatal(msg):
    """Abort compilation with an error message"""
    raise CompileError(msg)
