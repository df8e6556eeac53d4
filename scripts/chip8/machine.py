import os
import random


# ******************** STATIC SECTION
C8_FONTS = [0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
            0x20, 0x60, 0x20, 0x20, 0x70,  # 1
            0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
            0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
            0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
            0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
            0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
            0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
            0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
            0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
            0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
            0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
            0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
            0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
            0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
            0xF0, 0x80, 0xF0, 0x80, 0x80]  # F

MEMORY_SIZE = 4096
ADDRESS_MASK = 0xFFF
FONT_START_ADDRESS = 0x50
FONT_CHAR_SIZE = 5          # each character font is made of 5 bytes
ROM_START_ADDRESS = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - ROM_START_ADDRESS
STACK_SIZE = 16
REGISTERS_COUNT = 16
KEYS_COUNT = 16
FLAG_REGISTER = 0xF
SCREEN_HEIGHT = 32
SCREEN_WIDTH = 64
PIXEL_OFF = 0x00000000
PIXEL_ON = 0xFFFFFFFF
DEBUG = True if int(os.getenv('DEBUG', 0)) >= 1 else False


# ******************** ERRORS SECTION
class Chip8Error(Exception):
    """base class for every fault the machine can report"""

class StackOverflowError(Chip8Error):
    pass

class StackUnderflowError(Chip8Error):
    pass

class RomTooLargeError(Chip8Error):
    pass


# ******************** MEMORY SECTION
# ********** WRAPS A LIST TO REPRESENT A STACK WITH A LIMITED SIZE OF 16 ADDRESSES
class Stack:
    def __init__(self):
        self.addr_list = [0] * STACK_SIZE
        self.sp = 0     # index of the first free slot

    def __len__(self):
        return self.sp

    def __str__(self):
        return str([f"0x{a:04x}" for a in self.addr_list[:self.sp]])

    def push(self, address):
        if self.sp >= STACK_SIZE:
            raise StackOverflowError(f"The CHIP-8 stack can contain at most {STACK_SIZE} addresses. Limit exceeded")
        self.addr_list[self.sp] = address
        self.sp += 1

    def pop(self):
        if self.sp == 0:
            raise StackUnderflowError("Tried to return from a subroutine with an empty CHIP-8 stack")
        self.sp -= 1
        return self.addr_list[self.sp]

# ********** WRAPS A LIST TO REPRESENT THE MAIN MEMORY WITH A LIMITED SIZE OF 4KB
# every address is wrapped to 12 bits, so no access can fall outside of the 4KB
class Memory:
    def __init__(self):
        self.inner = [0] * MEMORY_SIZE
        self.inner[FONT_START_ADDRESS:FONT_START_ADDRESS+len(C8_FONTS)] = C8_FONTS

    def __setitem__(self, key, value):
        self.inner[key & ADDRESS_MASK] = value & 0xFF

    def __getitem__(self, index):
        return self.inner[index & ADDRESS_MASK]

    def read_block(self, start, length):
        return [self[start + i] for i in range(length)]

    def write_block(self, start, values):
        for i, value in enumerate(values):
            self[start + i] = value

    def load(self, data, start=ROM_START_ADDRESS):
        """copy raw bytes into memory, refusing programs which don't fit"""
        if len(data) > MEMORY_SIZE - start:
            raise RomTooLargeError(f"A program of {len(data)} bytes doesn't fit in memory (max {MEMORY_SIZE - start} bytes)")
        self.inner[start:start+len(data)] = list(data)


# ******************** I/O STATE SECTION
# ********** 16 KEYS, WRITTEN BY THE INPUT SURFACE AND ONLY READ BY THE CPU
# key numbers are masked to their low nibble, so a register holding 0x17 reads key 0x7
class Keypad:
    def __init__(self):
        self.keys = [False] * KEYS_COUNT

    def __getitem__(self, key):
        return self.keys[key & 0xF]

    def __setitem__(self, key, value):
        self.keys[key & 0xF] = bool(value)

    def press(self, key):
        self[key] = True

    def release(self, key):
        self[key] = False

    def first(self):
        """lowest index among the keys currently pressed, None if nothing is pressed"""
        for key, pressed in enumerate(self.keys):
            if pressed:
                return key
        return None

# ********** 64x32 MONOCHROME PIXELS, STORED AS A FLAT LIST
class Framebuffer:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT):
        self.w, self.h = w, h
        self.buffer = [PIXEL_OFF] * w * h

    def __getitem__(self, pos):
        x, y = pos
        return self.buffer[y * self.w + x]

    def clear(self):
        self.buffer = [PIXEL_OFF] * self.w * self.h

    def flip(self, x, y):
        """XOR the pixel with a fully ON value, return True when an ON pixel got erased"""
        idx = y * self.w + x
        erased = self.buffer[idx] == PIXEL_ON
        self.buffer[idx] ^= PIXEL_ON
        return erased

    def is_blank(self):
        return not any(self.buffer)

    def rows(self):
        """the screen as h rows of w booleans, True where the pixel is ON"""
        return [[p != PIXEL_OFF for p in self.buffer[y*self.w:(y+1)*self.w]] for y in range(self.h)]


# ******************** STATE SECTION
class Machine:
    """
    the whole CHIP-8 state: registers, memory, call stack, timers, keypad and screen
    it doesn't execute anything by itself, the dispatch module is the only one mutating it
    """
    def __init__(self, seed=None):
        self.mem = Memory()
        self.stack = Stack()
        self.v_regs = [0] * REGISTERS_COUNT
        self.pc = ROM_START_ADDRESS
        self.idx = 0    # specify where the sprites reside in memory
        self.dt = 0     # delay timer, active when non-zero
        self.st = 0     # sound timer, active when non-zero
        self.keypad = Keypad()
        self.screen = Framebuffer()
        self.rng = random.Random(seed)
        self.draw = False

    def __str__(self):
        registers = f"PC_REGISTER:0x{self.pc:04x} | IDX_REGISTER:0x{self.idx:04x} | VARIABLE_REGISTERS:{self.v_regs}"
        timers = f"DELAY_TIMER:{self.dt} | SOUND_TIMER:{self.st}"
        stack = f"STACK:{self.stack}"
        flags = f"DRAW: {self.draw}"
        return f"{registers}\n{timers}\n{stack}\n{flags}"

    @property
    def sound_active(self):
        return self.st > 0

    def load_program(self, data):
        self.mem.load(data, ROM_START_ADDRESS)

    def load_rom(self, path=None):
        """load ROM file from user specified path if present, raise an exception otherwise"""
        with open(path, mode='rb') as f:
            rom = f.read()
        self.load_program(rom)
        if DEBUG: print(f"The ROM at path {path} has been loaded successfully ({len(rom)} bytes)")

    def tick_timers(self):
        """delay/sound timers (dt/st), to be called at 60Hz by whoever paces the machine"""
        if self.dt > 0:
            self.dt -= 1
        if self.st > 0:
            self.st -= 1
