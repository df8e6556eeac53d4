import os
import unittest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")   # no window needed to run the tests
import pygame

from chip8 import (
    BEEP_PITCH, BEEP_RATE, DEFAULT_SPEED, FPS, KEY_MAPPINGS, SCALE, Buzzer, Screen,
    frame_cycles, get_args, main, process_events, run_frame, square_wave,
)
from dispatch import Chip8
from machine import Machine


class TestArgs(unittest.TestCase):
    def test_defaults(self):
        args = get_args(["-f", "pong.ch8"])
        self.assertEqual(args.file, "pong.ch8")
        self.assertEqual(args.speed, DEFAULT_SPEED)
        self.assertEqual(args.scale, SCALE)
        self.assertIsNone(args.seed)

    def test_options(self):
        args = get_args(["--file", "pong.ch8", "--speed", "1200", "--scale", "4", "--seed", "3"])
        self.assertEqual((args.speed, args.scale, args.seed), (1200, 4, 3))

    def test_rom_is_required(self):
        with self.assertRaises(SystemExit):
            get_args([])

    def test_speed_too_low(self):
        with self.assertRaises(SystemExit):
            get_args(["-f", "pong.ch8", "--speed", "10"])

    def test_missing_rom_exits(self):
        with self.assertRaises(SystemExit):
            main(["-f", "/nonexistent/rom.ch8"])


class TestKeyMappings(unittest.TestCase):
    def test_all_keys_mapped(self):
        self.assertEqual(sorted(KEY_MAPPINGS.values()), list(range(16)))


class TestFrontend(unittest.TestCase):
    def setUp(self):
        pygame.display.init()

    def tearDown(self):
        pygame.display.quit()

    def test_render(self):
        m = Machine()
        m.screen.flip(1, 2)
        s = Screen(s=2)
        s.render(m.screen)
        self.assertEqual(s.surface.get_at((2, 4)), s.foreground)
        self.assertEqual(s.surface.get_at((0, 0)), s.background)
        m.screen.clear()
        s.render(m.screen)
        self.assertEqual(s.surface.get_at((2, 4)), s.background)

    def test_process_events(self):
        m = Machine()
        pygame.event.clear()
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, key=pygame.K_a))
        self.assertTrue(process_events(m.keypad))
        self.assertTrue(m.keypad[0xA])
        pygame.event.post(pygame.event.Event(pygame.KEYUP, key=pygame.K_a))
        self.assertTrue(process_events(m.keypad))
        self.assertFalse(m.keypad[0xA])
        pygame.event.post(pygame.event.Event(pygame.QUIT))
        self.assertFalse(process_events(m.keypad))

    def test_run_frame_ticks_timers_once(self):
        m = Machine()
        m.load_program(bytes([0x12, 0x00]))     # JP 0x200, loops forever
        m.dt = 5
        chip = Chip8(m)
        self.assertFalse(run_frame(chip, 10))
        self.assertEqual(m.dt, 4)
        self.assertEqual(m.pc, 0x200)

    def test_run_frame_reports_draws(self):
        m = Machine()
        m.load_program(bytes([0xD0, 0x11, 0x12, 0x02]))     # DRW then spin on JP 0x202
        self.assertTrue(run_frame(Chip8(m), 3))


class TestPacing(unittest.TestCase):
    def test_a_second_runs_exactly_speed_cycles(self):
        for speed in [DEFAULT_SPEED, 60, 61, 1000, 1234]:
            with self.subTest(speed=speed):
                self.assertEqual(sum(frame_cycles(speed, f) for f in range(FPS)), speed)

    def test_remainder_is_spread(self):
        counts = {frame_cycles(DEFAULT_SPEED, f) for f in range(FPS)}
        self.assertEqual(counts, {11, 12})

    def test_frames_repeat_every_second(self):
        self.assertEqual(frame_cycles(DEFAULT_SPEED, 5), frame_cycles(DEFAULT_SPEED, FPS + 5))


class FakeSound:
    def __init__(self):
        self.calls = []

    def play(self, loops=0):
        self.calls.append(("play", loops))

    def stop(self):
        self.calls.append(("stop",))


class TestBuzzer(unittest.TestCase):
    def test_follows_sound_timer(self):
        m = Machine()
        sound = FakeSound()
        buzzer = Buzzer(sound)
        buzzer.update(m.sound_active)
        self.assertEqual(sound.calls, [])
        m.st = 2
        buzzer.update(m.sound_active)
        m.tick_timers()
        buzzer.update(m.sound_active)
        m.tick_timers()
        buzzer.update(m.sound_active)
        self.assertEqual(sound.calls, [("play", -1), ("stop",)])
        self.assertFalse(buzzer.playing)

    def test_silent_without_audio_device(self):
        buzzer = Buzzer()
        buzzer.update(True)
        self.assertFalse(buzzer.playing)

    def test_square_wave(self):
        samples = square_wave()
        period = BEEP_RATE // BEEP_PITCH
        self.assertEqual(len(samples), period * 2)      # 16 bits samples
        self.assertNotEqual(samples[:2], samples[-2:])


if __name__ == "__main__":
    unittest.main()
