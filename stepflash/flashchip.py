"""Command-level control of an SPI NOR flash chip."""

from __future__ import annotations

import abc
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from enum import IntEnum, IntFlag

ID0_WINBOND = 0xEF
ID0_SPANSION = 0x01
ID0_MICRON = 0x20
ID0_MACRONIX = 0xC2
ID0_SST = 0xBF
ID0_ADESTO = 0x1F

_MIB = 1_048_576
_FOUR_BYTE_THRESHOLD = 16_777_216
_PAGE_SIZE = 256
_DIE_SPAN = 0x2000000

CMD_WRITE_ENABLE = 0x06
CMD_READ_STATUS = 0x05
CMD_READ_FLAG_STATUS = 0x70
CMD_READ = 0x03
CMD_PAGE_PROGRAM = 0x02
CMD_BLOCK_ERASE = 0xD8
CMD_CHIP_ERASE = 0xC7
CMD_DIE_ERASE = 0xC4
CMD_SUSPEND = 0x75
CMD_SUSPEND_PROGRAM_SPANSION = 0x85
CMD_RESUME = 0x7A
CMD_RESUME_PROGRAM_SPANSION = 0x8A
CMD_ENTER_4BYTE = 0xB7
CMD_BANK_REGISTER_WRITE = 0x17
CMD_READ_ID = 0x9F
CMD_READ_SERIAL = 0x4B
CMD_POWER_DOWN = 0xB9
CMD_RELEASE_POWER_DOWN = 0xAB


class ChipFlags(IntFlag):
    """Features of the attached chip that change how it is driven."""

    ADDR_32BIT = 0x01
    STATUS_CMD70 = 0x02
    DIFF_SUSPEND = 0x04
    MULTI_DIE = 0x08
    BLOCKS_256K = 0x10


class _Busy(IntEnum):
    READY = 0
    PROGRAM = 1
    ERASE = 2
    CHIP_ERASE = 3
    PAGE_PROGRAM = 4


class SpiBus(abc.ABC):
    """An SPI bus with one chip-select line."""

    @abc.abstractmethod
    def select(self) -> None:
        """Assert chip select."""

    @abc.abstractmethod
    def deselect(self) -> None:
        """Release chip select."""

    @abc.abstractmethod
    def transfer(self, data: bytes) -> bytes:
        """Clock ``data`` out and return the same number of bytes clocked in."""


class FlashNotFoundError(Exception):
    """No flash chip answered on the bus."""


def _is_absent(ident: bytes) -> bool:
    return ident[:3] in (b"\x00\x00\x00", b"\xff\xff\xff")


def chip_capacity(ident: Sequence[int]) -> int:
    """Size in bytes of the chip with JEDEC identification ``ident``.

    Unknown chips are taken to hold 1 MiB; an absent chip holds nothing.
    """
    ident = bytes(ident)
    if len(ident) < 3:
        raise ValueError("a JEDEC identification has at least 3 bytes")
    if ident[0] == ID0_ADESTO and ident[1] == 0x89:
        return 16 * _MIB
    if 16 <= ident[2] <= 31:
        return 1 << ident[2]
    if 32 <= ident[2] <= 37:
        return 1 << (ident[2] - 6)
    if _is_absent(ident):
        return 0
    return _MIB


class FlashChip:
    """A serial NOR flash chip reached through an :class:`SpiBus`."""

    def __init__(self, bus: SpiBus) -> None:
        self.bus = bus
        self.flags = ChipFlags(0)
        self.busy = _Busy.READY
        self._die_progress = 0

    @contextmanager
    def _selected(self) -> Iterator[SpiBus]:
        self.bus.select()
        try:
            yield self.bus
        finally:
            self.bus.deselect()

    def _transaction(self, data: bytes, reply_length: int = 0) -> bytes:
        with self._selected() as bus:
            bus.transfer(data)
            return bytes(bus.transfer(bytes(reply_length))) if reply_length else b""

    def _addressed(self, opcode: int, address: int) -> bytes:
        if self.flags & ChipFlags.ADDR_32BIT:
            return bytes([opcode]) + (address & 0xFFFFFFFF).to_bytes(4, "big")
        return bytes([opcode]) + (address & 0xFFFFFF).to_bytes(3, "big")

    def _status_command(self) -> int:
        if self.flags & ChipFlags.STATUS_CMD70:
            return CMD_READ_FLAG_STATUS
        return CMD_READ_STATUS

    def _status_ready(self, status: int) -> bool:
        if self.flags & ChipFlags.STATUS_CMD70:
            return bool(status & 0x80)
        return not status & 0x01

    def _poll_status(self) -> bool:
        status = self._transaction(bytes([self._status_command()]), 1)[0]
        return self._status_ready(status)

    def _write_enable(self) -> None:
        self._transaction(bytes([CMD_WRITE_ENABLE]))

    def begin(self) -> bytes:
        """Identify the chip and configure addressing; return its identification.

        Raises FlashNotFoundError when nothing answers.
        """
        self.bus.deselect()
        ident = self.read_id()
        if _is_absent(ident):
            raise FlashNotFoundError("no flash chip responded")
        flags = ChipFlags(0)
        if chip_capacity(ident) > _FOUR_BYTE_THRESHOLD:
            flags |= ChipFlags.ADDR_32BIT
            if ident[0] == ID0_SPANSION:
                self._transaction(bytes([CMD_BANK_REGISTER_WRITE, 0x80]))
            else:
                self._write_enable()
                self._transaction(bytes([CMD_ENTER_4BYTE]))
            if ident[0] == ID0_MICRON:
                flags |= ChipFlags.MULTI_DIE
        if ident[0] == ID0_SPANSION:
            flags |= ChipFlags.DIFF_SUSPEND
            if len(ident) > 4 and not ident[4]:
                flags |= ChipFlags.BLOCKS_256K
        if ident[0] == ID0_MICRON:
            flags |= ChipFlags.STATUS_CMD70
        self.flags = flags
        return self.read_id()

    def block_size(self) -> int:
        """Size of one erase block in bytes."""
        if self.flags & ChipFlags.BLOCKS_256K:
            return 262144
        return 65536

    def sleep(self) -> None:
        """Put the chip into deep power-down."""
        if self.busy:
            self.wait()
        self._transaction(bytes([CMD_POWER_DOWN]))

    def wakeup(self) -> None:
        """Bring the chip out of deep power-down."""
        self._transaction(bytes([CMD_RELEASE_POWER_DOWN]))

    def read_id(self) -> bytes:
        """Read the JEDEC identification: 3 bytes, or 5 for Spansion chips."""
        if self.busy:
            self.wait()
        with self._selected() as bus:
            bus.transfer(bytes([CMD_READ_ID]))
            ident = bytes(bus.transfer(bytes(3)))
            if ident[0] == ID0_SPANSION:
                ident += bytes(bus.transfer(bytes(2)))
        return ident

    def read_serial_number(self) -> bytes:
        """Read the chip's 8-byte unique identifier."""
        if self.busy:
            self.wait()
        return self._transaction(bytes([CMD_READ_SERIAL, 0, 0, 0, 0]), 8)

    def _suspend(self, state: _Busy) -> None:
        self._write_enable()
        opcode = CMD_SUSPEND
        if self.flags & ChipFlags.DIFF_SUSPEND and state is _Busy.PROGRAM:
            opcode = CMD_SUSPEND_PROGRAM_SPANSION
        self._transaction(bytes([opcode]))
        with self._selected() as bus:
            bus.transfer(bytes([self._status_command()]))
            while not self._status_ready(bus.transfer(b"\x00")[0]):
                pass

    def _resume(self, state: _Busy) -> None:
        self._write_enable()
        opcode = CMD_RESUME
        if self.flags & ChipFlags.DIFF_SUSPEND and state is _Busy.PROGRAM:
            opcode = CMD_RESUME_PROGRAM_SPANSION
        self._transaction(bytes([opcode]))

    def read(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes starting at ``address``.

        A suspendable erase or program in progress is suspended for the read
        and resumed afterwards; anything else is waited for.
        """
        if length < 0:
            raise ValueError("length cannot be negative")
        if length == 0:
            return b""
        state = self.busy
        if state:
            if self._poll_status():
                state = self.busy = _Busy.READY
            elif state < _Busy.CHIP_ERASE:
                self._suspend(state)
            else:
                self.wait()
                state = _Busy.READY
        chunks = []
        remaining = length
        while remaining:
            count = remaining
            if self.flags & ChipFlags.MULTI_DIE:
                if (address & 0xFE000000) != ((address + remaining - 1) & 0xFE000000):
                    count = _DIE_SPAN - (address & (_DIE_SPAN - 1))
            with self._selected() as bus:
                bus.transfer(self._addressed(CMD_READ, address))
                chunks.append(bytes(bus.transfer(bytes(count))))
            address += count
            remaining -= count
        if state:
            self._resume(state)
        return b"".join(chunks)

    def ready(self) -> bool:
        """True when the chip has finished its last program or erase."""
        if not self.busy:
            return True
        if not self._poll_status():
            return False
        self.busy = _Busy.READY
        if self._die_progress:
            self.erase_all()
            return False
        return True

    def wait(self) -> None:
        """Block until the chip has finished its last program or erase."""
        while not self._poll_status():
            pass
        self.busy = _Busy.READY

    def write(self, address: int, data: bytes) -> None:
        """Program ``data`` at ``address``, one page at a time."""
        view = memoryview(bytes(data))
        offset = 0
        while offset < len(view):
            if self.busy:
                self.wait()
            self._write_enable()
            count = min(len(view) - offset, _PAGE_SIZE - (address & 0xFF))
            self._transaction(
                self._addressed(CMD_PAGE_PROGRAM, address) + bytes(view[offset : offset + count])
            )
            address += count
            offset += count
            self.busy = _Busy.PAGE_PROGRAM

    def erase_all(self) -> None:
        """Erase the whole chip; multi-die chips are erased one die per call."""
        if self.busy:
            self.wait()
        ident = self.read_id()
        if ident[0] == ID0_MICRON and 0x20 <= ident[2] <= 0x22:
            die_count = 4 if ident[2] == 0x21 else 2
            die_index = self._die_progress
            self._die_progress = 0
            if die_index >= die_count:
                return
            die_size = 8 if ident[2] == 0x22 else 2
            self._write_enable()
            self._transaction(
                bytes([CMD_DIE_ERASE, (die_index * die_size) & 0xFF, 0, 0, 0])
            )
            # The progress counter only has room for four dies, as on the chip.
            self._die_progress = (die_index + 1) % 4
        else:
            self._write_enable()
            self._transaction(bytes([CMD_CHIP_ERASE]))
        self.busy = _Busy.CHIP_ERASE

    def erase_block(self, address: int) -> None:
        """Erase the block that starts at ``address``."""
        if self.busy:
            self.wait()
        self._write_enable()
        self._transaction(self._addressed(CMD_BLOCK_ERASE, address))
        self.busy = _Busy.ERASE