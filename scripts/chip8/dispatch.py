from collections import namedtuple
from enum import Enum
from functools import wraps

from machine import (
    DEBUG, FLAG_REGISTER, FONT_CHAR_SIZE, FONT_START_ADDRESS, Machine,
)


# ******************** OPCODES SECTION
class Op(Enum):
    CLS = "00E0"
    RET = "00EE"
    JP = "1nnn"
    CALL = "2nnn"
    SE_VX_BYTE = "3xkk"
    SNE_VX_BYTE = "4xkk"
    SE_VX_VY = "5xy0"
    LD_VX_BYTE = "6xkk"
    ADD_VX_BYTE = "7xkk"
    LD_VX_VY = "8xy0"
    OR = "8xy1"
    AND = "8xy2"
    XOR = "8xy3"
    ADD_VX_VY = "8xy4"
    SUB = "8xy5"
    SHR = "8xy6"
    SUBN = "8xy7"
    SHL = "8xyE"
    SNE_VX_VY = "9xy0"
    LD_I = "Annn"
    JP_V0 = "Bnnn"
    RND = "Cxkk"
    DRW = "Dxyn"
    SKP = "Ex9E"
    SKNP = "ExA1"
    LD_VX_DT = "Fx07"
    LD_VX_K = "Fx0A"
    LD_DT_VX = "Fx15"
    LD_ST_VX = "Fx18"
    ADD_I_VX = "Fx1E"
    LD_F_VX = "Fx29"
    LD_B_VX = "Fx33"
    LD_MEM_VX = "Fx55"
    LD_VX_MEM = "Fx65"
    UNKNOWN = "????"    # every word without a bound rule, executed as a no-op

# a decoded instruction, operands already extracted from the 16 bits word
Instruction = namedtuple("Instruction", ["op", "word", "x", "y", "kk", "nnn", "n"])

# first level is keyed by the top nibble, the ambiguous families hold a second level table
FAMILIES = {
    0x0: {0x0: Op.CLS, 0xE: Op.RET},
    0x1: Op.JP,
    0x2: Op.CALL,
    0x3: Op.SE_VX_BYTE,
    0x4: Op.SNE_VX_BYTE,
    0x5: Op.SE_VX_VY,
    0x6: Op.LD_VX_BYTE,
    0x7: Op.ADD_VX_BYTE,
    0x8: {0x0: Op.LD_VX_VY, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR, 0x4: Op.ADD_VX_VY,
          0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN, 0xE: Op.SHL},
    0x9: Op.SNE_VX_VY,
    0xA: Op.LD_I,
    0xB: Op.JP_V0,
    0xC: Op.RND,
    0xD: Op.DRW,
    0xE: {0xE: Op.SKP, 0x1: Op.SKNP},
    0xF: {0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX, 0x18: Op.LD_ST_VX,
          0x1E: Op.ADD_I_VX, 0x29: Op.LD_F_VX, 0x33: Op.LD_B_VX, 0x55: Op.LD_MEM_VX,
          0x65: Op.LD_VX_MEM},
}
# mask applied to the word to get the key of the second level table
SUB_MASKS = {0x0: 0x000F, 0x8: 0x000F, 0xE: 0x000F, 0xF: 0x00FF}

MNEMONICS = {}     # filled in by the asm decorator


def decode(word):
    """decode a 16 bits word into an Instruction, unmapped words become Op.UNKNOWN"""
    family = (word & 0xF000) >> 12
    op = FAMILIES[family]
    if isinstance(op, dict):
        op = op.get(word & SUB_MASKS[family], Op.UNKNOWN)
    return Instruction(
        op=op,
        word=word,
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        kk=word & 0x00FF,
        nnn=word & 0x0FFF,
        n=word & 0x000F,
    )

def disassemble(instruction):
    return MNEMONICS[instruction.op].format(**instruction._asdict())


# ******************** UTILITIES SECTION
def asm(op, msg):
    """decorator binding an opcode to its ASM, printed out whenever the instruction runs in DEBUG mode"""
    MNEMONICS[op] = msg
    def decorator(fn):
        @wraps(fn)
        def wrapper_fn(self, instruction):
            mem_addr = (self.m.pc - 0x2) & 0xFFFF   # pc already points to the next instruction
            if DEBUG: print(f"mem_addr: 0x{mem_addr:04x}    instruction: {msg.format(**instruction._asdict())}")
            fn(self, instruction)
        return wrapper_fn
    return decorator


# ******************** CPU SECTION
class Chip8:
    """fetch, decode and execute CHIP-8 instructions against a Machine"""
    def __init__(self, m=None):
        self.m = m if m is not None else Machine()
        self.instructions = {
            Op.CLS: self._clear_screen,
            Op.RET: self._return,
            Op.JP: self._jump,
            Op.CALL: self._call_addr,
            Op.SE_VX_BYTE: self._skip_if_eq,
            Op.SNE_VX_BYTE: self._skip_if_not_eq,
            Op.SE_VX_VY: self._skip_if_eq_regs,
            Op.LD_VX_BYTE: self._set_vk,
            Op.ADD_VX_BYTE: self._add_to_vk,
            Op.LD_VX_VY: self._set_vx_to_vy,
            Op.OR: self._set_vx_or_vy,
            Op.AND: self._set_vx_and_vy,
            Op.XOR: self._set_vx_xor_vy,
            Op.ADD_VX_VY: self._add_vx_vy,
            Op.SUB: self._sub_vx_vy,
            Op.SHR: self._shr,
            Op.SUBN: self._subn_vx_vy,
            Op.SHL: self._shl,
            Op.SNE_VX_VY: self._skip_if_not_eq_regs,
            Op.LD_I: self._set_idx,
            Op.JP_V0: self._jump_plus,
            Op.RND: self._random_byte_and,
            Op.DRW: self._to_screen,
            Op.SKP: self._skip_if_pressed,
            Op.SKNP: self._skip_if_not_pressed,
            Op.LD_VX_DT: self._set_vx_dt,
            Op.LD_VX_K: self._wait_keypress,
            Op.LD_DT_VX: self._set_dt_vx,
            Op.LD_ST_VX: self._set_st,
            Op.ADD_I_VX: self._add_to_idx,
            Op.LD_F_VX: self._select_char,
            Op.LD_B_VX: self._bcd_repr,
            Op.LD_MEM_VX: self._store_vregs,
            Op.LD_VX_MEM: self._load_vregs,
            Op.UNKNOWN: self._no_op,
        }

    def __str__(self):
        return str(self.m)

    @asm(Op.CLS, "CLS")
    def _clear_screen(self, ins):
        self.m.screen.clear()
        self.m.draw = True

    @asm(Op.RET, "RET")
    def _return(self, ins):
        """return from a subroutine"""
        self.m.pc = self.m.stack.pop()

    @asm(Op.JP, "JP 0x{nnn:04x}")
    def _jump(self, ins):
        self.m.pc = ins.nnn

    @asm(Op.CALL, "CALL 0x{nnn:04x}")
    def _call_addr(self, ins):
        # the return address goes in the slot pointed by the stack pointer
        self.m.stack.push(self.m.pc)
        self.m.pc = ins.nnn

    @asm(Op.SE_VX_BYTE, "SE V{x}, 0x{kk:02x}")
    def _skip_if_eq(self, ins):
        if self.m.v_regs[ins.x] == ins.kk:
            self._goto_next_instruction()

    @asm(Op.SNE_VX_BYTE, "SNE V{x}, 0x{kk:02x}")
    def _skip_if_not_eq(self, ins):
        if self.m.v_regs[ins.x] != ins.kk:
            self._goto_next_instruction()

    @asm(Op.SE_VX_VY, "SE V{x}, V{y}")
    def _skip_if_eq_regs(self, ins):
        if self.m.v_regs[ins.x] == self.m.v_regs[ins.y]:
            self._goto_next_instruction()

    @asm(Op.SNE_VX_VY, "SNE V{x}, V{y}")
    def _skip_if_not_eq_regs(self, ins):
        if self.m.v_regs[ins.x] != self.m.v_regs[ins.y]:
            self._goto_next_instruction()

    @asm(Op.LD_VX_BYTE, "LD V{x}, 0x{kk:02x}")
    def _set_vk(self, ins):
        """set the value of one of the 16 variable registers, Vx"""
        self.m.v_regs[ins.x] = ins.kk

    @asm(Op.ADD_VX_BYTE, "ADD V{x}, 0x{kk:02x}")
    def _add_to_vk(self, ins):
        """add to the value already present in one of the variable registers, VF untouched"""
        self.m.v_regs[ins.x] = (self.m.v_regs[ins.x] + ins.kk) & 0xFF

    @asm(Op.LD_VX_VY, "LD V{x}, V{y}")
    def _set_vx_to_vy(self, ins):
        self.m.v_regs[ins.x] = self.m.v_regs[ins.y]

    @asm(Op.OR, "OR V{x}, V{y}")
    def _set_vx_or_vy(self, ins):
        self.m.v_regs[ins.x] |= self.m.v_regs[ins.y]

    @asm(Op.AND, "AND V{x}, V{y}")
    def _set_vx_and_vy(self, ins):
        self.m.v_regs[ins.x] &= self.m.v_regs[ins.y]

    @asm(Op.XOR, "XOR V{x}, V{y}")
    def _set_vx_xor_vy(self, ins):
        self.m.v_regs[ins.x] ^= self.m.v_regs[ins.y]

    @asm(Op.ADD_VX_VY, "ADD V{x}, V{y}")
    def _add_vx_vy(self, ins):
        """set Vx = Vx + Vy, VF = carry"""
        v = self.m.v_regs
        sum = v[ins.x] + v[ins.y]
        v[FLAG_REGISTER] = 1 if sum > 255 else 0
        v[ins.x] = sum & 0xFF     # keep only the lowest 8 bits from the result and store them in Vx

    @asm(Op.SUB, "SUB V{x}, V{y}")
    def _sub_vx_vy(self, ins):
        """set Vx = Vx - Vy, VF = NOT borrow"""
        v = self.m.v_regs
        v[FLAG_REGISTER] = 1 if v[ins.x] > v[ins.y] else 0
        v[ins.x] = (v[ins.x] - v[ins.y]) & 0xFF

    @asm(Op.SUBN, "SUBN V{x}, V{y}")
    def _subn_vx_vy(self, ins):
        """set Vx = Vy - Vx, VF = NOT borrow"""
        v = self.m.v_regs
        v[FLAG_REGISTER] = 1 if v[ins.y] > v[ins.x] else 0
        v[ins.x] = (v[ins.y] - v[ins.x]) & 0xFF

    @asm(Op.SHR, "SHR V{x}")
    def _shr(self, ins):
        """set Vx = Vx SHR 1, VF = bit shifted out"""
        v = self.m.v_regs
        v[FLAG_REGISTER] = v[ins.x] & 0x1
        v[ins.x] = v[ins.x] >> 1

    @asm(Op.SHL, "SHL V{x}")
    def _shl(self, ins):
        """set Vx = Vx SHL 1, VF = bit shifted out (0 or 1, like SHR)"""
        v = self.m.v_regs
        v[FLAG_REGISTER] = (v[ins.x] & 0x80) >> 7
        v[ins.x] = (v[ins.x] << 1) & 0xFF

    @asm(Op.LD_I, "LD I, 0x{nnn:04x}")
    def _set_idx(self, ins):
        self.m.idx = ins.nnn

    @asm(Op.JP_V0, "JP V0, 0x{nnn:04x}")
    def _jump_plus(self, ins):
        self.m.pc = self.m.v_regs[0x0] + ins.nnn

    @asm(Op.RND, "RND V{x}, 0x{kk:02x}")
    def _random_byte_and(self, ins):
        self.m.v_regs[ins.x] = self.m.rng.randint(0, 255) & ins.kk

    @asm(Op.DRW, "DRW V{x}, V{y}, {n}")
    def _to_screen(self, ins):
        """display n-byte sprite starting at memory location I at (Vx, Vy), set VF = collision"""
        screen = self.m.screen
        # only the origin wraps around, whatever falls past the right/bottom edge is clipped
        x = self.m.v_regs[ins.x] % screen.w
        y = self.m.v_regs[ins.y] % screen.h
        self.m.v_regs[FLAG_REGISTER] = 0
        for i in range(ins.n):
            y_coordinate = y + i
            if y_coordinate >= screen.h:
                break
            sprite_byte = self.m.mem[self.m.idx + i]
            for j in range(8):
                x_coordinate = x + j
                if x_coordinate >= screen.w:
                    break
                # sprites are XORed onto the existing screen and if this
                # causes any pixel to be erased then VF=1, otherwise VF=0
                if sprite_byte & (0x80 >> j) and screen.flip(x_coordinate, y_coordinate):
                    self.m.v_regs[FLAG_REGISTER] = 1
        self.m.draw = True

    @asm(Op.SKP, "SKP V{x}")
    def _skip_if_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is pressed"""
        if self.m.keypad[self.m.v_regs[ins.x]]:
            self._goto_next_instruction()

    @asm(Op.SKNP, "SKNP V{x}")
    def _skip_if_not_pressed(self, ins):
        """skip the following instruction if the key corresponding to the hex value stored in Vx is NOT pressed"""
        if not self.m.keypad[self.m.v_regs[ins.x]]:
            self._goto_next_instruction()

    @asm(Op.LD_VX_DT, "LD V{x}, DT")
    def _set_vx_dt(self, ins):
        self.m.v_regs[ins.x] = self.m.dt

    @asm(Op.LD_VX_K, "LD V{x}, K")
    def _wait_keypress(self, ins):
        """wait for a key press and store its value in Vx"""
        key = self.m.keypad.first()
        if key is None:
            self.m.pc = (self.m.pc - 0x2) & 0xFFFF   # stay on the same instruction until a key is pressed
        else:
            self.m.v_regs[ins.x] = key

    @asm(Op.LD_DT_VX, "LD DT, V{x}")
    def _set_dt_vx(self, ins):
        self.m.dt = self.m.v_regs[ins.x]

    @asm(Op.LD_ST_VX, "LD ST, V{x}")
    def _set_st(self, ins):
        self.m.st = self.m.v_regs[ins.x]

    @asm(Op.ADD_I_VX, "ADD I, V{x}")
    def _add_to_idx(self, ins):
        self.m.idx = (self.m.idx + self.m.v_regs[ins.x]) & 0xFFFF

    @asm(Op.LD_F_VX, "LD F, V{x}")
    def _select_char(self, ins):
        """set I to location of sprite for digit Vx"""
        self.m.idx = FONT_START_ADDRESS + FONT_CHAR_SIZE * (self.m.v_regs[ins.x] & 0xF)

    @asm(Op.LD_B_VX, "LD B, V{x}")
    def _bcd_repr(self, ins):
        """store the hundreds digit of Vx in memory at I, the tens digit at I+1, the ones digit at I+2"""
        value = self.m.v_regs[ins.x]
        hundreds, tens, ones = value // 100, (value // 10) % 10, value % 10
        self.m.mem.write_block(self.m.idx, [hundreds, tens, ones])

    @asm(Op.LD_MEM_VX, "LD [I], V{x}")
    def _store_vregs(self, ins):
        """store registers V0 through Vx (included) in memory starting at location I, I is left untouched"""
        self.m.mem.write_block(self.m.idx, self.m.v_regs[:ins.x+1])

    @asm(Op.LD_VX_MEM, "LD V{x}, [I]")
    def _load_vregs(self, ins):
        """read registers V0 through Vx (included) from memory starting at location I, I is left untouched"""
        self.m.v_regs[:ins.x+1] = self.m.mem.read_block(self.m.idx, ins.x+1)

    @asm(Op.UNKNOWN, "DW 0x{word:04x}")
    def _no_op(self, ins):
        pass

    def _goto_next_instruction(self):
        self.m.pc = (self.m.pc + 0x2) & 0xFFFF

    def fetch(self):
        """each instruction is two bytes long, stored big-endian"""
        return self.m.mem[self.m.pc] << 8 | self.m.mem[self.m.pc + 1]

    def execute(self, instruction):
        self.instructions[instruction.op](instruction)

    def cycle(self):
        """emulate one machine cycle: fetch, advance pc, decode, execute"""
        self.m.draw = False
        word = self.fetch()
        self._goto_next_instruction()
        self.execute(decode(word))
