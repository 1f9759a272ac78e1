import pytest

MASK = (1 << 64) - 1


def execute(asm):
    """Run the emitted program up to its first exit syscall and return
    the exit status register.  Understands only what letc emits."""
    data = {}
    regs = {}
    section = None

    def value(op):
        if op.endswith("]"):
            return data[op[op.index("[") + 1:-1]]
        if op in regs:
            return regs[op]
        return int(op)

    for line in asm.splitlines():
        s = line.split(";")[0].strip()
        if not s:
            continue
        if s.startswith("section"):
            section = s.split()[1]
            continue
        if section == ".data":
            name, _directive, val = s.split()
            data[name] = int(val)
            continue
        if section != ".text" or s.endswith(":"):
            continue
        parts = s.split(None, 1)
        instr = parts[0]
        ops = [o.strip() for o in parts[1].split(",")] if len(parts) > 1 else []
        if instr == "syscall":
            assert regs["rax"] == 60
            return regs["rdi"]
        dst = ops[0]
        if instr in ("mov", "movzx"):
            regs[dst] = value(ops[1]) & MASK
        elif instr == "xor":
            regs[dst] = regs.get(dst, 0) ^ regs.get(ops[1], 0)
        elif instr == "add":
            regs[dst] = (regs[dst] + value(ops[1])) & MASK
        elif instr == "sub":
            regs[dst] = (regs[dst] - value(ops[1])) & MASK
        elif instr == "imul":
            regs[dst] = (regs[dst] * value(ops[1])) & MASK
        else:
            raise AssertionError("unexpected instruction %r" % s)
    raise AssertionError("program never exits")


@pytest.fixture
def run():
    return execute
