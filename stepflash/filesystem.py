"""A flat file store on serial flash: a signature, a file table and the data.

On-chip layout, all integers little-endian::

    uint32 signature             0xFA96554C
    uint16 max_files
    uint16 strings_size / 4
    uint16 hashes[max_files]     0xFFFF marks the first unused slot, 0 a removed file
    struct {uint32 begin, uint32 length, uint16 string_index / 4} info[max_files]
    char   strings[strings_size] NUL-terminated file names

Everything after the strings section is file data.  A blank chip (all 0xFF)
is given the default layout the first time it is used.
"""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass

from stepflash.flashchip import FlashChip, chip_capacity

SIGNATURE = 0xFA96554C
BLANK = 0xFFFFFFFF
DEFAULT_MAX_FILES = 600
DEFAULT_STRINGS_SIZE = 25560

_HEADER = 8
_INFO_SIZE = 10
_UNUSED_HASH = 0xFFFF
_CHUNK = 16
_HASH_BATCH = 8


class FlashFilesystemError(Exception):
    """The flash holds no usable file store, or an update did not take."""


class FilesystemFullError(FlashFilesystemError):
    """There is no free file slot or not enough space for the file."""


def _encode(filename: str) -> bytes:
    encoded = filename.encode("utf-8", "surrogateescape")
    if b"\0" in encoded:
        raise ValueError("file names cannot contain NUL characters")
    return encoded


def filename_hash(filename: str) -> int:
    """The 16-bit table hash of ``filename``; never 0x0000 or 0xFFFF."""
    value = 2166136261
    for byte in _encode(filename):
        value ^= byte
        value = (value * 16777619) & 0xFFFFFFFF
    return value % 0xFFFE + 1


@dataclass(eq=False)
class FlashFile:
    """An open file: a fixed-size region of the flash with a read/write position.

    A file that was not found has address 0 and is false.
    """

    chip: FlashChip | None = None
    address: int = 0
    length: int = 0
    offset: int = 0
    dirindex: int = 0

    def __bool__(self) -> bool:
        return self.address > 0

    def _span(self, count: int) -> int:
        if self.offset >= self.length:
            return 0
        return min(count, self.length - self.offset)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all that remain if negative)."""
        count = self._span(self.length if size < 0 else size)
        if count == 0 or self.chip is None:
            return b""
        data = self.chip.read(self.address + self.offset, count)
        self.offset += count
        return data

    def write(self, data: bytes) -> int:
        """Program ``data`` at the position; return how many bytes fitted."""
        data = bytes(data)
        count = self._span(len(data))
        if count == 0 or self.chip is None:
            return 0
        self.chip.write(self.address + self.offset, data[:count])
        self.offset += count
        return count

    def seek(self, offset: int) -> None:
        """Move the position to ``offset`` bytes from the start."""
        if offset < 0:
            raise ValueError("offset cannot be negative")
        self.offset = offset

    def tell(self) -> int:
        """The current position."""
        return self.offset

    def size(self) -> int:
        """The file's fixed length in bytes."""
        return self.length

    def available(self) -> int:
        """Bytes left between the position and the end."""
        return max(0, self.length - self.offset)

    def erase(self) -> None:
        """Erase the file's blocks back to 0xFF.

        Only files that start and end on erase-block boundaries can be erased.
        """
        if self.chip is None or not self:
            raise ValueError("the file is not open")
        block = self.chip.block_size()
        if self.address % block or self.length % block:
            raise ValueError("file does not cover whole erase blocks")
        for start in range(self.address, self.address + self.length, block):
            self.chip.erase_block(start)

    def flash_address(self) -> int:
        """Where the file's data begins on the flash, or 0."""
        return self.address


class FlashFilesystem:
    """Creates, finds, lists and removes files on a :class:`FlashChip`."""

    def __init__(self, chip: FlashChip) -> None:
        self.chip = chip

    def _settle(self) -> None:
        while not self.chip.ready():
            pass

    def _parameters(self) -> tuple[int, int]:
        """Return (max_files, strings_size), formatting a blank chip first."""
        signature, params = struct.unpack("<II", self.chip.read(0, _HEADER))
        if signature == BLANK:
            defaults = (DEFAULT_STRINGS_SIZE // 4) << 16 | DEFAULT_MAX_FILES
            self.chip.write(0, struct.pack("<II", SIGNATURE, defaults))
            self._settle()
            signature, params = struct.unpack("<II", self.chip.read(0, _HEADER))
        if signature != SIGNATURE or not params:
            raise FlashFilesystemError("the flash does not hold a file store")
        return params & 0xFFFF, (params & 0xFFFF0000) >> 14

    @staticmethod
    def _info_address(max_files: int, index: int) -> int:
        return _HEADER + max_files * 2 + index * _INFO_SIZE

    @staticmethod
    def _strings_base(max_files: int) -> int:
        return _HEADER + max_files * 12

    def _hashes(self, max_files: int) -> Iterator[tuple[int, int]]:
        for start in range(0, max_files, _HASH_BATCH):
            count = min(_HASH_BATCH, max_files - start)
            raw = self.chip.read(_HEADER + start * 2, count * 2)
            for offset, (value,) in enumerate(struct.iter_unpack("<H", raw)):
                yield start + offset, value

    def _info(self, max_files: int, index: int) -> tuple[int, int, int]:
        return struct.unpack("<IIH", self.chip.read(self._info_address(max_files, index), _INFO_SIZE))

    def _name_matches(self, name: bytes, address: int) -> bool:
        expected = name + b"\0"
        pos = 0
        while True:
            for byte in self.chip.read(address + pos, _CHUNK):
                if byte != expected[pos]:
                    return False
                if byte == 0:
                    return True
                pos += 1

    def _read_name(self, address: int, limit: int | None = None) -> bytes:
        collected = bytearray()
        while limit is None or len(collected) < limit:
            want = _CHUNK if limit is None else min(_CHUNK, limit - len(collected))
            chunk = self.chip.read(address + len(collected), want)
            end = chunk.find(b"\0")
            if end >= 0:
                collected += chunk[:end]
                return bytes(collected)
            collected += chunk
        return bytes(collected)

    def open(self, filename: str) -> FlashFile:
        """Open ``filename``; the result is false when there is no such file."""
        name = _encode(filename)
        max_files, _ = self._parameters()
        wanted = filename_hash(filename)
        for index, value in self._hashes(max_files):
            if value == wanted:
                begin, length, string_index = self._info(max_files, index)
                if self._name_matches(name, self._strings_base(max_files) + string_index * 4):
                    return FlashFile(self.chip, begin, length, 0, index)
            elif value == _UNUSED_HASH:
                break
        return FlashFile()

    def exists(self, filename: str) -> bool:
        """True if ``filename`` is stored."""
        return bool(self.open(filename))

    def create(self, filename: str, length: int, align: int = 0) -> FlashFile:
        """Allocate ``length`` bytes for a new file and return it opened.

        With ``align`` the data address and length are rounded up to a
        multiple of it; otherwise the data starts on a 256-byte page.
        Raises FileExistsError if the name is taken and FilesystemFullError
        when there is no free slot or the file does not fit.
        """
        if length < 0 or align < 0:
            raise ValueError("length and alignment cannot be negative")
        name = _encode(filename)
        if self.exists(filename):
            raise FileExistsError(filename)
        max_files, strings_size = self._parameters()
        index = next(
            (slot for slot, value in self._hashes(max_files) if value == _UNUSED_HASH),
            None,
        )
        if index is None:
            raise FilesystemFullError("every file slot is in use")

        base = self._strings_base(max_files)
        name_address = base
        if index == 0:
            address = base + strings_size
        else:
            begin, previous_length, string_index = self._info(max_files, index - 1)
            address = begin + previous_length
            name_address += string_index * 4
            name_address += len(self._read_name(name_address)) + 1
            name_address = (name_address + 3) & 0x0003FFFC

        if align > 0:
            address = -(-address // align) * align
            length = -(-length // align) * align
        else:
            # Files never share a page, so a write to one cannot stall reads of another.
            address = (address + 255) & 0xFFFFFF00

        if address + length > chip_capacity(self.chip.read_id()):
            raise FilesystemFullError(f"not enough space for {length} bytes")

        self.chip.write(name_address, name + b"\0")
        info = struct.pack("<IIH", address, length, (name_address - base) // 4)
        self.chip.write(self._info_address(max_files, index), info)
        self._settle()
        self.chip.write(_HEADER + index * 2, struct.pack("<H", filename_hash(filename)))
        self._settle()
        return FlashFile(self.chip, address, length, 0, index)

    def create_erasable(self, filename: str, length: int) -> FlashFile:
        """Create a file that occupies whole erase blocks."""
        return self.create(filename, length, self.chip.block_size())

    def remove(self, target: str | FlashFile) -> None:
        """Hide a file (by name or open file) from the table.

        Its space is not reclaimed.  Raises FileNotFoundError if there is no
        such file and FlashFilesystemError if the table entry did not clear.
        """
        file = self.open(target) if isinstance(target, str) else target
        if not file:
            raise FileNotFoundError(target if isinstance(target, str) else "file is not open")
        slot = _HEADER + file.dirindex * 2
        (value,) = struct.unpack("<H", self.chip.read(slot, 2))
        self.chip.write(slot, struct.pack("<H", value ^ 0xFFFF))
        self._settle()
        (value,) = struct.unpack("<H", self.chip.read(slot, 2))
        if value != 0:
            raise FlashFilesystemError("the file table entry could not be cleared")
        file.address = 0
        file.length = 0

    def listdir(self, max_name_length: int | None = None) -> Iterator[tuple[str, int]]:
        """Yield (name, size) for each stored file in table order.

        Names longer than ``max_name_length`` characters are cut short.
        """
        if max_name_length is not None and max_name_length < 0:
            raise ValueError("max_name_length cannot be negative")
        max_files, _ = self._parameters()
        base = self._strings_base(max_files)
        for index in range(max_files):
            (value,) = struct.unpack("<H", self.chip.read(_HEADER + index * 2, 2))
            if value == 0:
                continue
            raw = self.chip.read(self._info_address(max_files, index) + 4, 6)
            length, string_index = struct.unpack("<IH", raw)
            if length == BLANK:
                return
            name = self._read_name(base + string_index * 4, max_name_length)
            yield name.decode("utf-8", "surrogateescape"), length