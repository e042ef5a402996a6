"""Reading and writing of .npy arrays and .npz archives of them."""

from __future__ import annotations

import math
import re
import struct
import sys
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, NamedTuple, Optional, Tuple, Union

import numpy as np

PathLike = Union[str, Path]

_MAGIC = b"\x93NUMPY"
_ZIP64_MARKER = 0xFFFFFFFF
_KNOWN_TYPES = frozenset("fiubc")
_TYPE_BY_KIND = {"f": "f", "i": "i", "u": "u", "b": "b", "c": "c"}


class NpyFormatError(ValueError):
    """Raised when a .npy header or .npz archive cannot be understood."""


class _NpyHeader(NamedTuple):
    word_size: int
    shape: Tuple[int, ...]
    fortran_order: bool
    type_char: str


@dataclass
class NpyArray:
    """Raw array contents together with the shape and element size from the header."""

    shape: Tuple[int, ...]
    word_size: int
    fortran_order: bool = False
    data: Optional[bytes] = None
    type_char: str = "?"

    def __post_init__(self) -> None:
        self.shape = tuple(int(s) for s in self.shape)
        if self.word_size < 0:
            raise ValueError("word_size must not be negative")
        if self.data is None:
            self.data = bytes(self.num_bytes)
        else:
            self.data = bytes(self.data)
            if len(self.data) != self.num_bytes:
                raise ValueError(
                    f"data holds {len(self.data)} bytes, expected {self.num_bytes}"
                )

    @property
    def num_vals(self) -> int:
        return math.prod(self.shape)

    @property
    def num_bytes(self) -> int:
        return self.num_vals * self.word_size

    def as_array(self, dtype=None) -> np.ndarray:
        """Interpret the data as a numpy array of the header's (or the given) type."""
        if dtype is None:
            if self.type_char not in _KNOWN_TYPES:
                raise ValueError(f"unknown element type {self.type_char!r}; pass a dtype")
            dtype = np.dtype(f"<{self.type_char}{self.word_size}")
        else:
            dtype = np.dtype(dtype)
        if dtype.itemsize != self.word_size:
            raise ValueError(
                f"dtype {dtype} has item size {dtype.itemsize}, array word size is {self.word_size}"
            )
        flat = np.frombuffer(self.data, dtype=dtype)
        order = "F" if self.fortran_order else "C"
        return flat.reshape(self.shape, order=order).copy()


def map_type(dtype) -> str:
    """Return the single-letter type code used in the header for a dtype."""
    return _TYPE_BY_KIND.get(np.dtype(dtype).kind, "?")


def _endian_char() -> str:
    return "<" if sys.byteorder == "little" else ">"


def create_npy_header(dtype, shape) -> bytes:
    """Build a version 1.0 header for a C-ordered array of this dtype and shape."""
    dtype = np.dtype(dtype)
    shape = tuple(int(s) for s in shape)
    if not shape:
        raise ValueError("shape must have at least one dimension")
    dims = ", ".join(str(s) for s in shape)
    if len(shape) == 1:
        dims += ","
    text = (
        f"{{'descr': '{_endian_char()}{map_type(dtype)}{dtype.itemsize}', "
        f"'fortran_order': False, 'shape': ({dims}), }}"
    )
    # pad so that the 10-byte preamble plus the dictionary is a multiple of 16
    remainder = 16 - (10 + len(text)) % 16
    text = text + " " * (remainder - 1) + "\n"
    encoded = text.encode("latin-1")
    if len(encoded) > 0xFFFF:
        raise ValueError("header too long for format version 1.0")
    return _MAGIC + b"\x01\x00" + struct.pack("<H", len(encoded)) + encoded


def _parse_dict(header: str) -> _NpyHeader:
    loc = header.find("fortran_order")
    if loc < 0:
        raise NpyFormatError("failed to find header keyword: 'fortran_order'")
    fortran_order = header[loc + 16:loc + 20] == "True"

    open_paren = header.find("(")
    close_paren = header.find(")")
    if open_paren < 0 or close_paren < 0:
        raise NpyFormatError("failed to find header keyword: '(' or ')'")
    shape = tuple(int(n) for n in re.findall(r"[0-9]+", header[open_paren + 1:close_paren]))

    loc = header.find("descr")
    if loc < 0:
        raise NpyFormatError("failed to find header keyword: 'descr'")
    loc += 9
    if loc + 1 >= len(header):
        raise NpyFormatError("truncated 'descr' entry")
    if header[loc] not in ("<", "|"):
        raise NpyFormatError(f"unsupported byte order {header[loc]!r}; only little endian is read")
    type_char = header[loc + 1]
    digits = re.match(r"[0-9]+", header[loc + 2:])
    word_size = int(digits.group()) if digits else 0
    return _NpyHeader(word_size, shape, fortran_order, type_char)


def parse_npy_header(header: bytes) -> _NpyHeader:
    """Parse a header held in memory, starting at the magic string.

    Returns (word_size, shape, fortran_order, type_char).
    """
    buf = bytes(header)
    if len(buf) < 10 or buf[:6] != _MAGIC:
        raise NpyFormatError("not an npy header")
    if buf[6] == 1:
        (length,) = struct.unpack_from("<H", buf, 8)
        start = 10
    else:
        if len(buf) < 12:
            raise NpyFormatError("truncated npy header")
        (length,) = struct.unpack_from("<I", buf, 8)
        start = 12
    if len(buf) < start + length:
        raise NpyFormatError("truncated npy header")
    return _parse_dict(buf[start:start + length].decode("latin-1"))


def read_npy_header(stream: BinaryIO) -> _NpyHeader:
    """Read and parse a header from a binary stream, leaving it at the array data."""
    prefix = stream.read(10)
    if len(prefix) != 10:
        raise NpyFormatError("failed to read npy header")
    if prefix[:6] != _MAGIC:
        raise NpyFormatError("not an npy header")
    extra = b""
    if prefix[6] == 1:
        (length,) = struct.unpack("<H", prefix[8:10])
    else:
        extra = stream.read(2)
        if len(extra) != 2:
            raise NpyFormatError("failed to read npy header")
        (length,) = struct.unpack("<I", prefix[8:10] + extra)
    body = stream.read(length)
    if len(body) != length:
        raise NpyFormatError("failed to read npy header")
    if not body.endswith(b"\n"):
        raise NpyFormatError("npy header does not end with a newline")
    return parse_npy_header(prefix + extra + body)


def parse_zip_footer(data: bytes) -> Tuple[int, int, int]:
    """Parse the end-of-central-directory record at the end of an archive.

    Returns (number of records, central directory size, central directory offset).
    """
    if len(data) < 22:
        raise NpyFormatError("archive too short for a zip footer")
    (_sig, disk_no, disk_start, nrecs_on_disk, nrecs, size, offset, comment_len) = struct.unpack(
        "<4s4HIIH", bytes(data[-22:])
    )
    if disk_no != 0 or disk_start != 0 or nrecs_on_disk != nrecs or comment_len != 0:
        raise NpyFormatError("unsupported zip footer (multi-disk archive or comment)")
    return nrecs, size, offset


def _load_npy(stream: BinaryIO) -> NpyArray:
    header = read_npy_header(stream)
    size = math.prod(header.shape) * header.word_size
    data = stream.read(size)
    if len(data) != size:
        raise NpyFormatError("failed to read array data")
    return NpyArray(header.shape, header.word_size, header.fortran_order, data, header.type_char)


def _load_deflated(stream: BinaryIO, compressed_size: int) -> NpyArray:
    raw = stream.read(compressed_size)
    if len(raw) != compressed_size:
        raise NpyFormatError("failed to read compressed array")
    try:
        buf = zlib.decompress(raw, -zlib.MAX_WBITS)
    except zlib.error as exc:
        raise NpyFormatError(f"cannot inflate array: {exc}") from exc
    header = parse_npy_header(buf)
    size = math.prod(header.shape) * header.word_size
    offset = len(buf) - size
    if offset < 0:
        raise NpyFormatError("compressed array is shorter than its header claims")
    return NpyArray(
        header.shape, header.word_size, header.fortran_order, buf[offset:], header.type_char
    )


@dataclass(frozen=True)
class _Entry:
    name: str
    method: int
    compressed_size: int
    data_offset: int


def _apply_zip64(extra: bytes, compressed: int, uncompressed: int) -> Tuple[int, int]:
    pos = 0
    while pos + 4 <= len(extra):
        tag, size = struct.unpack_from("<HH", extra, pos)
        body = extra[pos + 4:pos + 4 + size]
        if tag == 1:
            values = iter(
                struct.unpack_from("<Q", body, i)[0] for i in range(0, len(body) - 7, 8)
            )
            if uncompressed == _ZIP64_MARKER:
                uncompressed = next(values, uncompressed)
            if compressed == _ZIP64_MARKER:
                compressed = next(values, compressed)
            break
        pos += 4 + size
    return compressed, uncompressed


def _entries(stream: BinaryIO) -> Iterator[_Entry]:
    while True:
        local = stream.read(30)
        if len(local) != 30:
            raise NpyFormatError("failed to read local file header")
        if local[2:4] != b"\x03\x04":
            return
        (method,) = struct.unpack_from("<H", local, 8)
        compressed, uncompressed = struct.unpack_from("<II", local, 18)
        name_len, extra_len = struct.unpack_from("<HH", local, 26)
        name = stream.read(name_len)
        if len(name) != name_len:
            raise NpyFormatError("failed to read entry name")
        extra = stream.read(extra_len)
        if len(extra) != extra_len:
            raise NpyFormatError("failed to read extra field")
        compressed, _ = _apply_zip64(extra, compressed, uncompressed)
        offset = stream.tell()
        yield _Entry(name.decode("utf-8")[:-4], method, compressed, offset)
        stream.seek(offset + compressed)


def _load_entry(stream: BinaryIO, entry: _Entry) -> NpyArray:
    stream.seek(entry.data_offset)
    if entry.method == 0:
        return _load_npy(stream)
    return _load_deflated(stream, entry.compressed_size)


def npy_load(path: PathLike) -> NpyArray:
    """Load a single array from a .npy file."""
    with open(path, "rb") as fp:
        return _load_npy(fp)


def npz_load(path: PathLike, varname: str) -> NpyArray:
    """Load the array stored under ``varname`` from a .npz archive."""
    with open(path, "rb") as fp:
        for entry in _entries(fp):
            if entry.name == varname:
                return _load_entry(fp, entry)
    raise KeyError(f"variable {varname!r} not found in {path}")


def npz_load_all(path: PathLike) -> Dict[str, NpyArray]:
    """Load every array of a .npz archive, keyed by name."""
    with open(path, "rb") as fp:
        return {entry.name: _load_entry(fp, entry) for entry in _entries(fp)}


def _check_mode(mode: str) -> None:
    if mode not in ("w", "a"):
        raise ValueError(f"mode must be 'w' or 'a', got {mode!r}")


def _prepare(array) -> Tuple[np.ndarray, bytes]:
    arr = np.asarray(array)
    if arr.ndim == 0:
        raise ValueError("cannot save a zero-dimensional array")
    if map_type(arr.dtype) == "?":
        raise ValueError(f"unsupported dtype {arr.dtype}")
    native = arr.astype(arr.dtype.newbyteorder("="), copy=False)
    return native, native.tobytes(order="C")


def npy_save(path: PathLike, array, mode: str = "w") -> None:
    """Write an array to a .npy file; with mode 'a' append along the first axis."""
    _check_mode(mode)
    arr, payload = _prepare(array)
    path = Path(path)
    shape = tuple(arr.shape)
    existing = b""

    if mode == "a" and path.exists():
        with path.open("rb") as fp:
            header = read_npy_header(fp)
            old_size = math.prod(header.shape) * header.word_size
            existing = fp.read(old_size)
        if len(existing) != old_size:
            raise NpyFormatError(f"{path} is shorter than its header claims")
        if header.fortran_order:
            raise ValueError(f"cannot append to Fortran-ordered array in {path}")
        if header.word_size != arr.dtype.itemsize:
            raise ValueError(
                f"{path} has word size {header.word_size} but appended data has "
                f"{arr.dtype.itemsize}"
            )
        if len(header.shape) != arr.ndim:
            raise ValueError(f"appending misdimensioned data to {path}")
        if tuple(header.shape[1:]) != shape[1:]:
            raise ValueError(f"appending misshaped data to {path}")
        shape = (header.shape[0] + shape[0],) + shape[1:]

    path.write_bytes(create_npy_header(arr.dtype, shape) + existing + payload)


def npz_save(zipname: PathLike, name: str, array, mode: str = "w") -> None:
    """Store an array uncompressed as ``name`` in a .npz archive; mode 'a' adds to it."""
    _check_mode(mode)
    arr, payload = _prepare(array)
    path = Path(zipname)
    fname = (name + ".npy").encode("utf-8")

    nrecs = 0
    central_offset = 0
    central = b""
    prefix = b""
    if mode == "a" and path.exists():
        contents = path.read_bytes()
        nrecs, central_size, central_offset = parse_zip_footer(contents)
        central = contents[central_offset:central_offset + central_size]
        if len(central) != central_size:
            raise NpyFormatError("central directory read error while adding to existing zip")
        prefix = contents[:central_offset]

    body = create_npy_header(arr.dtype, arr.shape) + payload
    nbytes = len(body)
    crc = zlib.crc32(body)

    local = (
        b"PK"
        + struct.pack("<HHHHHHIIIHH", 0x0403, 20, 0, 0, 0, 0, crc, nbytes, nbytes, len(fname), 0)
        + fname
    )
    central += (
        b"PK"
        + struct.pack("<HH", 0x0201, 20)
        + local[4:30]
        + struct.pack("<HHHII", 0, 0, 0, 0, central_offset)
        + fname
    )
    footer = b"PK" + struct.pack(
        "<HHHHHIIH",
        0x0605,
        0,
        0,
        nrecs + 1,
        nrecs + 1,
        len(central),
        central_offset + nbytes + len(local),
        0,
    )
    path.write_bytes(prefix + local + body + central + footer)