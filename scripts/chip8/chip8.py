# CHIP-8 INFO
# https://chip-8.github.io/extensions/#chip-8
# https://chip-8.github.io/links/
#
# COWGOD'S TECHNICAL REFERENCE
# http://devernay.free.fr/hacks/chip8/C8TECH10.HTM
#
# TEST SUITE
# https://github.com/Timendus/chip8-test-suite


import argparse
import sys
from array import array

import os
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "no welcome message"   # this env var disable pygame's welcome message when imported
import pygame
from pygame.locals import (
    K_0, K_1, K_2, K_3,
    K_4, K_5, K_6, K_7,
    K_8, K_9, K_a, K_b,
    K_c, K_d, K_e, K_f,
)

from dispatch import Chip8
from machine import DEBUG, Chip8Error, Machine, SCREEN_HEIGHT, SCREEN_WIDTH


# ******************** STATIC SECTION
KEY_MAPPINGS = {
    K_0: 0x0,
    K_1: 0x1,
    K_2: 0x2,
    K_3: 0x3,
    K_4: 0x4,
    K_5: 0x5,
    K_6: 0x6,
    K_7: 0x7,
    K_8: 0x8,
    K_9: 0x9,
    K_a: 0xA,
    K_b: 0xB,
    K_c: 0xC,
    K_d: 0xD,
    K_e: 0xE,
    K_f: 0xF,
}

FPS = 60                # timers are decremented once per frame
DEFAULT_SPEED = 700     # instructions per second
SCALE = 15
BLUE = pygame.Color(80,69,155,255)
LIGHT_BLUE = pygame.Color(136,126,203,255)
BEEP_RATE = 22050          # samples per second of the mixer
BEEP_PITCH = 440          # Hz
BEEP_VOLUME = 4096


# ******************** UTILITIES SECTION
def get_args(argv=None):
    parser = argparse.ArgumentParser(description="CHIP-8 interpreter")
    parser.add_argument("-f", "--file", required=True, help="input rom file")
    parser.add_argument("-s", "--speed", type=int, default=DEFAULT_SPEED, help="instructions executed per second")
    parser.add_argument("--scale", type=int, default=SCALE, help="size in pixels of a single CHIP-8 pixel")
    parser.add_argument("--seed", type=int, default=None, help="seed of the RND instruction generator")
    args = parser.parse_args(argv)
    if args.speed < FPS:
        parser.error(f"speed must be at least {FPS} instructions per second")
    return args


# ******************** I/O SECTION
class Screen:
    def __init__(self, w=SCREEN_WIDTH, h=SCREEN_HEIGHT, s=SCALE, bg_color=BLUE, fg_color=LIGHT_BLUE):
        self.w, self.h, self.scale = w, h, s
        self.background = bg_color
        self.foreground = fg_color
        self.surface = pygame.display.set_mode(
            (w * self.scale, h * self.scale),
        )
        self.surface.fill(self.background)

    def render(self, framebuffer):
        """
        paint the whole framebuffer on the surface
        the change won't be immediatly visible because it'll require a call to the static method refresh
        """
        self.surface.fill(self.background)
        for y, row in enumerate(framebuffer.rows()):
            for x, on in enumerate(row):
                if on:
                    pygame.draw.rect(
                        self.surface,
                        self.foreground,
                        (x * self.scale, y * self.scale, self.scale, self.scale)
                    )

    @staticmethod
    def refresh():
        pygame.display.flip()

# ********** PLAYS A CONTINUOUS TONE FOR AS LONG AS THE SOUND TIMER IS ACTIVE
class Buzzer:
    def __init__(self, sound=None):
        self.sound = sound      # None when no audio device is available
        self.playing = False

    def update(self, active):
        if self.sound is None or active == self.playing:
            return
        if active:
            self.sound.play(loops=-1)
        else:
            self.sound.stop()
        self.playing = active


def square_wave(rate=BEEP_RATE, pitch=BEEP_PITCH, volume=BEEP_VOLUME):
    """one period of a square wave as signed 16 bits mono samples"""
    period = rate // pitch
    half = period // 2
    return array('h', [volume] * half + [-volume] * (period - half)).tobytes()


def make_buzzer():
    if not pygame.mixer.get_init():
        if DEBUG: print("No audio device available, the sound timer will be silent")
        return Buzzer()
    return Buzzer(pygame.mixer.Sound(buffer=square_wave()))


def process_events(keypad):
    """forward keyboard events to the keypad, return False when the user asked to quit"""
    for event in pygame.event.get():
        if event.type == pygame.QUIT:
            return False
        if event.type == pygame.KEYDOWN:
            if event.key == pygame.K_ESCAPE:
                return False
            if event.key in KEY_MAPPINGS:
                keypad.press(KEY_MAPPINGS[event.key])
        elif event.type == pygame.KEYUP and event.key in KEY_MAPPINGS:
            keypad.release(KEY_MAPPINGS[event.key])
    return True


def frame_cycles(speed, frame):
    """cycles to run in the given frame, spreading the remainder so that FPS frames run exactly speed cycles"""
    frame %= FPS
    return speed * (frame + 1) // FPS - speed * frame // FPS


def run_frame(chip, cycles):
    """execute a frame worth of cycles then tick the timers once, return True if the screen changed"""
    dirty = False
    for _ in range(cycles):
        chip.cycle()
        dirty = dirty or chip.m.draw
    chip.m.tick_timers()
    return dirty


# ******************** ENTRY POINT SECTION
def main(argv=None):
    args = get_args(argv)
    # pygame initialization
    pygame.mixer.pre_init(BEEP_RATE, -16, 1)
    pygame.init()
    clock = pygame.time.Clock()
    pygame.display.set_caption(os.path.basename(args.file))
    # CPU
    m = Machine(seed=args.seed)
    try:
        m.load_rom(args.file)
    except (OSError, Chip8Error) as e:
        pygame.quit()
        sys.exit(f"Unable to load the ROM at path {args.file}: {e}")
    chip = Chip8(m)
    # IO
    s = Screen(s=args.scale)
    buzzer = make_buzzer()
    # emulation loop
    run = True
    frame = 0
    while run:
        clock.tick(FPS)
        try:
            run = process_events(m.keypad)
            if run and run_frame(chip, frame_cycles(args.speed, frame)):
                s.render(m.screen)
                s.refresh()
            buzzer.update(m.sound_active)
            frame += 1
        except Chip8Error as e:
            pygame.quit()
            sys.exit(f"********** THE EMULATOR CRASHED ({e}) WITH THE FOLLOWING STATE\n{chip}")
    pygame.quit()


if __name__ == "__main__":
    main()
