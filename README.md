# stepflash

Two small toolkits for microcontroller-style hardware, usable from plain Python:

- **Stepper motion**: `stepflash.stepper.AccelStepper` drives a stepper motor at a
  constant speed or with acceleration and deceleration to a target position.
  `stepflash.multistepper.MultiStepper` moves several steppers so that they all arrive
  at their targets together.
- **Serial flash storage**: `stepflash.flashchip.FlashChip` sends the common SPI NOR
  flash commands (JEDEC ID, page program, block and chip erase, program/erase
  suspend), and `stepflash.filesystem.FlashFilesystem` keeps a flat table of named,
  fixed-size files on the chip.

Hardware is reached through small interfaces you supply. Two software stand-ins come
with the package: `stepflash.pins.RecordingGpio` records pin modes and writes, and
`stepflash.emulator.FlashEmulator` behaves like an SPI flash chip held in memory.

## Installation

```
pip install stepflash
```

The package has no dependencies outside the standard library.

## Stepper motors

```python
from stepflash.pins import MotorInterface, RecordingGpio
from stepflash.stepper import AccelStepper

gpio = RecordingGpio()
motor = AccelStepper(MotorInterface.DRIVER, 2, 3, gpio=gpio)
motor.set_max_speed(1000)
motor.set_acceleration(500)
motor.move_to(400)
while motor.run():
    pass
print(motor.current_position())  # 400
```

- `run()` takes at most one step per call, and only when a step is due by the clock.
  Call it often. It returns True while the motor is still heading for its target.
- `run_speed()` steps at the constant speed set with `set_speed()`. That speed is
  limited to plus or minus the top speed.
- `stop()` sets a new target that halts the motor as quickly as the acceleration
  allows.
- `run_to_position()` and `run_to_new_position()` block until the target is reached.

The wiring is chosen with `MotorInterface`: `DRIVER` (step and direction pins),
`FULL2WIRE`, `FULL3WIRE`, `FULL4WIRE`, `HALF3WIRE` and `HALF4WIRE`. To have the motor
stepped by your own code instead of by pins, pass `forward=` and `backward=`
callables. The motor then uses the `FUNCTION` interface.

By default the time comes from a monotonic clock in microseconds. Pass `clock=`, a
callable that returns microseconds, to drive the timing yourself.

`set_enable_pin()`, `set_pins_inverted()`, `set_pin_inversions()`,
`enable_outputs()` and `disable_outputs()` control the enable line and the pin
polarity. `stepflash.pins.phase_mask(interface, step)` gives the coil pattern for a
step number.

The speed and acceleration arithmetic is in `stepflash.profile.SpeedProfile`, which
can be used on its own.

### Coordinated moves

```python
from stepflash.multistepper import MultiStepper
from stepflash.stepper import AccelStepper

x_motor = AccelStepper()
y_motor = AccelStepper()
for motor in (x_motor, y_motor):
    motor.set_max_speed(500)

group = MultiStepper()
group.add_stepper(x_motor)
group.add_stepper(y_motor)
group.move_to([1000, 250])
group.run_speed_to_position()
```

- A group holds at most ten steppers. `add_stepper()` raises `ValueError` once the
  group is full.
- Each stepper moves at a constant speed, chosen so that all of them finish together.
  Acceleration is not used.
- `move_to()` raises `ValueError` if it is given fewer positions than there are
  steppers.

### Register formatting

`stepflash.bitformat` renders a 32-bit unsigned value as text:

```python
from stepflash.bitformat import format_bin, format_hex

format_hex(0x12345678)  # '12:34:56:78'
format_bin(0x12345678)  # '00010010.00110100.01010110.01111000'
```

Values outside the 32-bit range raise `ValueError`.

## Serial flash

```python
from stepflash.emulator import FlashEmulator
from stepflash.filesystem import FlashFilesystem
from stepflash.flashchip import FlashChip

bus = FlashEmulator(bytes([0xEF, 0x40, 0x18]), 16 * 1024 * 1024)
chip = FlashChip(bus)
chip.begin()

fs = FlashFilesystem(chip)
f = fs.create("config.bin", 1024)
f.write(b"hello")
f.seek(0)
print(f.read(5))            # b'hello'
print(list(fs.listdir()))   # [('config.bin', 1024)]
```

### The chip

`FlashChip.begin()` reads the JEDEC identification and sets up addressing. Chips
larger than 16 MiB get 4-byte addresses. It raises `FlashNotFoundError` when nothing
answers.

The chip can also:

- read data with `read()`, suspending a suspendable program or erase while it reads;
- program data one page at a time with `write()`;
- erase with `erase_block()` and `erase_all()`;
- report when it has finished with `ready()` and `wait()`;
- enter and leave deep power-down with `sleep()` and `wakeup()`;
- give its identification and serial number with `read_id()` and
  `read_serial_number()`.

`chip_capacity()` works out a chip's size from its identification.

### The file store

A blank chip is given the file table on first use. A chip that holds anything else
raises `FlashFilesystemError`.

- Files have a fixed size, chosen with `create()`.
  - `create()` raises `FileExistsError` if the name is already taken.
  - It raises `FilesystemFullError` when there is no free slot or not enough space.
- `create_erasable()` places a file on erase-block boundaries. Such a file can later be
  wiped with `FlashFile.erase()` and written again.
- `open()` returns a `FlashFile` that is false when no file has that name.
- `exists()` tells whether a file with that name is stored.
- `remove()` hides a file from lookups. It takes a name or an open file, and raises
  `FileNotFoundError` for a missing file. Its space is not reclaimed until the whole
  chip is erased.
- `listdir()` yields `(name, size)` pairs. `listdir(max_name_length)` cuts long names
  short.

## Connecting real hardware

The package contains no SPI or GPIO drivers of its own and has no command-line
program.

- To drive a real flash chip, pass `FlashChip` an object with `select()`,
  `deselect()` and `transfer(data)` methods. You can subclass `stepflash.flashchip.SpiBus`
  for this.
- To drive real motor pins, pass `AccelStepper(gpio=...)` an object with
  `pin_mode(pin, mode)` and `digital_write(pin, value)` methods. You can subclass
  `stepflash.pins.Gpio` for this.