import os
import tempfile
import unittest

from machine import (
    C8_FONTS, FONT_START_ADDRESS, MAX_ROM_SIZE, PIXEL_ON, ROM_START_ADDRESS,
    Framebuffer, Keypad, Machine, Memory, RomTooLargeError, Stack,
    StackOverflowError, StackUnderflowError,
)


class TestMemory(unittest.TestCase):
    def test_fonts_loaded(self):
        mem = Memory()
        self.assertEqual(mem.read_block(FONT_START_ADDRESS, len(C8_FONTS)), C8_FONTS)
        self.assertEqual(mem[0x000], 0)

    def test_addresses_wrap_to_12_bits(self):
        mem = Memory()
        mem[0x1234] = 0xAB
        self.assertEqual(mem[0x234], 0xAB)
        self.assertEqual(mem[0xF234], 0xAB)

    def test_block_wraps_past_the_end(self):
        mem = Memory()
        mem.write_block(0xFFF, [1, 2])
        self.assertEqual(mem[0xFFF], 1)
        self.assertEqual(mem[0x000], 2)

    def test_rom_too_large(self):
        mem = Memory()
        with self.assertRaises(RomTooLargeError):
            mem.load(bytes(MAX_ROM_SIZE + 1))
        mem.load(bytes([0xFF]) * MAX_ROM_SIZE)
        self.assertEqual(mem[0xFFF], 0xFF)


class TestStack(unittest.TestCase):
    def test_push_pop(self):
        stack = Stack()
        stack.push(0x202)
        stack.push(0x304)
        self.assertEqual(len(stack), 2)
        self.assertEqual(stack.pop(), 0x304)
        self.assertEqual(stack.pop(), 0x202)
        self.assertEqual(len(stack), 0)

    def test_overflow(self):
        stack = Stack()
        for i in range(16):
            stack.push(i)
        with self.assertRaises(StackOverflowError):
            stack.push(16)

    def test_underflow(self):
        with self.assertRaises(StackUnderflowError):
            Stack().pop()


class TestKeypad(unittest.TestCase):
    def test_first_is_lowest_pressed(self):
        keypad = Keypad()
        self.assertIsNone(keypad.first())
        keypad.press(0xC)
        keypad.press(0x3)
        self.assertEqual(keypad.first(), 0x3)
        keypad.release(0x3)
        self.assertEqual(keypad.first(), 0xC)
        self.assertTrue(keypad[0xC])
        self.assertFalse(keypad[0x3])


class TestFramebuffer(unittest.TestCase):
    def test_flip_reports_erased_pixels(self):
        fb = Framebuffer()
        self.assertFalse(fb.flip(3, 4))
        self.assertEqual(fb[3, 4], PIXEL_ON)
        self.assertTrue(fb.flip(3, 4))
        self.assertEqual(fb[3, 4], 0)

    def test_rows(self):
        fb = Framebuffer()
        fb.flip(63, 31)
        rows = fb.rows()
        self.assertEqual(len(rows), 32)
        self.assertEqual(len(rows[0]), 64)
        self.assertTrue(rows[31][63])
        self.assertEqual(sum(sum(r) for r in rows), 1)

    def test_clear(self):
        fb = Framebuffer()
        fb.flip(0, 0)
        fb.clear()
        self.assertTrue(fb.is_blank())


class TestMachine(unittest.TestCase):
    def test_initial_state(self):
        m = Machine()
        self.assertEqual(m.pc, ROM_START_ADDRESS)
        self.assertEqual(m.v_regs, [0] * 16)
        self.assertEqual(m.idx, 0)
        self.assertEqual(len(m.stack), 0)
        self.assertTrue(m.screen.is_blank())

    def test_load_rom(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "test.ch8")
            with open(path, "wb") as f:
                f.write(bytes([0x12, 0x00]))
            m = Machine()
            m.load_rom(path)
        self.assertEqual(m.mem[ROM_START_ADDRESS], 0x12)
        self.assertEqual(m.mem[ROM_START_ADDRESS + 1], 0x00)

    def test_missing_rom(self):
        with self.assertRaises(OSError):
            Machine().load_rom("/nonexistent/rom.ch8")

    def test_tick_timers(self):
        m = Machine()
        m.dt, m.st = 2, 1
        self.assertTrue(m.sound_active)
        m.tick_timers()
        self.assertEqual((m.dt, m.st), (1, 0))
        self.assertFalse(m.sound_active)
        m.tick_timers()
        m.tick_timers()
        self.assertEqual((m.dt, m.st), (0, 0))

    def test_seeded_rng_is_repeatable(self):
        self.assertEqual(Machine(seed=7).rng.random(), Machine(seed=7).rng.random())

    def test_str_dump(self):
        dump = str(Machine())
        self.assertIn("PC_REGISTER:0x0200", dump)
        self.assertIn("STACK:[]", dump)


if __name__ == "__main__":
    unittest.main()
