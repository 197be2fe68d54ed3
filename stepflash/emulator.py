"""An in-memory SPI NOR flash chip that answers the commands a FlashChip sends."""

from __future__ import annotations

from collections.abc import Sequence

from stepflash.flashchip import (
    CMD_BANK_REGISTER_WRITE,
    CMD_BLOCK_ERASE,
    CMD_CHIP_ERASE,
    CMD_DIE_ERASE,
    CMD_ENTER_4BYTE,
    CMD_PAGE_PROGRAM,
    CMD_POWER_DOWN,
    CMD_READ,
    CMD_READ_FLAG_STATUS,
    CMD_READ_ID,
    CMD_READ_SERIAL,
    CMD_READ_STATUS,
    CMD_RELEASE_POWER_DOWN,
    CMD_RESUME,
    CMD_RESUME_PROGRAM_SPANSION,
    CMD_SUSPEND,
    CMD_SUSPEND_PROGRAM_SPANSION,
    CMD_WRITE_ENABLE,
    ID0_MICRON,
    ID0_SPANSION,
    SpiBus,
    chip_capacity,
)

_CMD_WRITE_DISABLE = 0x04
_CMD_CHIP_ERASE_ALT = 0x60
_CMD_EXIT_4BYTE = 0xE9

_STATUS_BUSY = 0x01
_STATUS_WRITE_ENABLED = 0x02
_FLAG_READY = 0x80

_PAGE = 256
_PROGRAM_POLLS = 1
_ERASE_POLLS = 2


class FlashEmulator(SpiBus):
    """A flash chip held in memory, driven byte by byte over a simulated bus.

    Erased bytes read 0xFF and programming can only clear bits.  After a
    program or erase the chip reports busy for a few status reads.
    """

    def __init__(self, jedec_id: Sequence[int] = b"\xef\x40\x18", size: int | None = None) -> None:
        ident = bytes(jedec_id)
        if len(ident) < 3:
            raise ValueError("a JEDEC identification has at least 3 bytes")
        if size is None:
            size = chip_capacity(ident)
        if size <= 0:
            raise ValueError("flash size must be positive")
        self.jedec_id = ident
        self.size = size
        self.serial_number = bytes(range(1, 9))
        self._pages: dict[int, bytearray] = {}
        self._selected = False
        self._opcode: int | None = None
        self._args = bytearray()
        self._cursor = 0
        self._write_enabled = False
        self._busy_polls = 0
        self._suspended = False
        self._four_byte = False
        self._asleep = False

    def select(self) -> None:
        self._selected = True
        self._opcode = None
        self._args = bytearray()
        self._cursor = 0

    def deselect(self) -> None:
        if self._selected:
            self._finish()
        self._selected = False
        self._opcode = None

    def transfer(self, data: bytes) -> bytes:
        if not self._selected:
            raise RuntimeError("chip select is not asserted")
        return bytes(self._exchange(byte) for byte in data)

    def _busy(self) -> bool:
        return self._busy_polls > 0 and not self._suspended

    def _status(self) -> int:
        status = _STATUS_BUSY if self._busy() else 0
        if self._write_enabled:
            status |= _STATUS_WRITE_ENABLED
        return status

    def _flag_status(self) -> int:
        return 0 if self._busy() else _FLAG_READY

    def _poll(self, status: int) -> int:
        if self._busy():
            self._busy_polls -= 1
        return status

    def _address_length(self) -> int:
        return 4 if self._four_byte else 3

    def _get(self, address: int) -> int:
        page = self._pages.get(address // _PAGE)
        return 0xFF if page is None else page[address % _PAGE]

    def _exchange(self, byte: int) -> int:
        if self._opcode is None:
            self._opcode = byte
            return 0
        opcode = self._opcode
        if self._asleep and opcode != CMD_RELEASE_POWER_DOWN:
            return 0
        if opcode == CMD_READ_ID:
            value = self.jedec_id[self._cursor] if self._cursor < len(self.jedec_id) else 0
            self._cursor += 1
            return value
        if opcode == CMD_READ_STATUS:
            return self._poll(self._status())
        if opcode == CMD_READ_FLAG_STATUS:
            return self._poll(self._flag_status())
        if opcode == CMD_READ:
            width = self._address_length()
            if len(self._args) < width:
                self._args.append(byte)
                if len(self._args) == width:
                    self._cursor = int.from_bytes(self._args, "big") % self.size
                return 0
            value = self._get(self._cursor)
            self._cursor = (self._cursor + 1) % self.size
            return value
        if opcode == CMD_READ_SERIAL:
            if len(self._args) < 4:
                self._args.append(byte)
                return 0
            value = (
                self.serial_number[self._cursor]
                if self._cursor < len(self.serial_number)
                else 0
            )
            self._cursor += 1
            return value
        self._args.append(byte)
        return 0

    def _finish(self) -> None:
        opcode = self._opcode
        args = bytes(self._args)
        if opcode is None:
            return
        if self._asleep:
            if opcode == CMD_RELEASE_POWER_DOWN:
                self._asleep = False
            return
        if opcode == CMD_POWER_DOWN:
            self._asleep = True
        elif opcode == CMD_WRITE_ENABLE:
            self._write_enabled = True
        elif opcode == _CMD_WRITE_DISABLE:
            self._write_enabled = False
        elif opcode in (CMD_SUSPEND, CMD_SUSPEND_PROGRAM_SPANSION):
            if self._busy_polls > 0:
                self._suspended = True
        elif opcode in (CMD_RESUME, CMD_RESUME_PROGRAM_SPANSION):
            self._suspended = False
        elif opcode == CMD_ENTER_4BYTE:
            self._four_byte = True
        elif opcode == _CMD_EXIT_4BYTE:
            self._four_byte = False
        elif opcode == CMD_BANK_REGISTER_WRITE:
            if args:
                self._four_byte = bool(args[0] & 0x80)
        elif opcode in (
            CMD_PAGE_PROGRAM,
            CMD_BLOCK_ERASE,
            CMD_CHIP_ERASE,
            _CMD_CHIP_ERASE_ALT,
            CMD_DIE_ERASE,
        ):
            self._modify(opcode, args)

    def _modify(self, opcode: int, args: bytes) -> None:
        if not self._write_enabled or self._busy_polls > 0:
            return
        width = 4 if opcode == CMD_DIE_ERASE else self._address_length()
        if opcode in (CMD_PAGE_PROGRAM, CMD_BLOCK_ERASE, CMD_DIE_ERASE) and len(args) < width:
            return
        address = int.from_bytes(args[:width], "big") % self.size
        self._write_enabled = False
        if opcode == CMD_PAGE_PROGRAM:
            data = args[width:]
            if not data:
                return
            self._program(address, data)
            self._busy_polls = _PROGRAM_POLLS
            return
        if opcode == CMD_BLOCK_ERASE:
            block = self._block_size()
            start = address - address % block
            self._erase(start, block)
        elif opcode == CMD_DIE_ERASE:
            die = self._die_size()
            start = address - address % die
            self._erase(start, die)
        else:
            self._pages.clear()
        self._busy_polls = _ERASE_POLLS

    def _block_size(self) -> int:
        ident = self.jedec_id
        if ident[0] == ID0_SPANSION and len(ident) > 4 and not ident[4]:
            return 262144
        return 65536

    def _die_size(self) -> int:
        if self.jedec_id[0] == ID0_MICRON and self.jedec_id[2] == 0x22:
            return 0x8000000
        return 0x2000000

    def _program(self, address: int, data: bytes) -> None:
        base = address & ~(_PAGE - 1)
        for index, value in enumerate(data):
            target = base | ((address + index) & (_PAGE - 1))
            page = self._pages.setdefault(target // _PAGE, bytearray(b"\xff" * _PAGE))
            page[target % _PAGE] &= value

    def _erase(self, start: int, length: int) -> None:
        first = start // _PAGE
        last = (start + length) // _PAGE
        for key in [key for key in self._pages if first <= key < last]:
            del self._pages[key]