import io
import struct
import zipfile

import numpy as np
import pytest

from dsoutil.npy import (
    NpyArray,
    NpyFormatError,
    create_npy_header,
    map_type,
    npy_load,
    npy_save,
    npz_load,
    npz_load_all,
    npz_save,
    parse_npy_header,
    parse_zip_footer,
    read_npy_header,
)


def _numpy_npy_bytes(arr):
    buf = io.BytesIO()
    np.save(buf, arr)
    return buf.getvalue()


@pytest.mark.parametrize(
    "dtype, code",
    [
        (np.float32, "f"),
        (np.float64, "f"),
        (np.int8, "i"),
        (np.int64, "i"),
        (np.uint8, "u"),
        (np.uint16, "u"),
        (np.bool_, "b"),
        (np.complex64, "c"),
        (object, "?"),
    ],
)
def test_map_type(dtype, code):
    assert map_type(dtype) == code


def test_header_layout():
    header = create_npy_header(np.float32, (3,))
    assert header[:8] == b"\x93NUMPY\x01\x00"
    assert len(header) % 16 == 0
    assert header.endswith(b"\n")
    (length,) = struct.unpack("<H", header[8:10])
    assert length == len(header) - 10
    assert b"'shape': (3,), }" in header


def test_header_multi_dim_shape_text():
    header = create_npy_header(np.int32, (2, 3))
    assert b"'shape': (2, 3), }" in header
    assert b"'fortran_order': False" in header


def test_header_rejects_empty_shape():
    with pytest.raises(ValueError):
        create_npy_header(np.float32, ())


def test_parse_own_header_round_trip():
    parsed = parse_npy_header(create_npy_header(np.float64, (4, 5, 6)))
    assert parsed.word_size == 8
    assert parsed.shape == (4, 5, 6)
    assert parsed.fortran_order is False
    assert parsed.type_char == "f"


def test_parse_numpy_fortran_header():
    arr = np.asfortranarray(np.arange(6, dtype=np.int16).reshape(2, 3))
    parsed = parse_npy_header(_numpy_npy_bytes(arr))
    assert parsed.fortran_order is True
    assert parsed.shape == (2, 3)
    assert parsed.word_size == 2


def test_parse_rejects_big_endian():
    data = _numpy_npy_bytes(np.zeros(3, dtype=">f4"))
    with pytest.raises(NpyFormatError):
        parse_npy_header(data)


def test_parse_rejects_garbage():
    with pytest.raises(NpyFormatError):
        parse_npy_header(b"not a header at all")


def test_parse_rejects_missing_keyword():
    text = b"{'shape': (3,), }\n"
    data = b"\x93NUMPY\x01\x00" + struct.pack("<H", len(text)) + text
    with pytest.raises(NpyFormatError):
        parse_npy_header(data)


def test_read_header_leaves_stream_at_data():
    arr = np.arange(4, dtype=np.float32)
    stream = io.BytesIO(_numpy_npy_bytes(arr))
    parsed = read_npy_header(stream)
    assert parsed.shape == (4,)
    assert stream.read() == arr.tobytes()


def test_read_header_truncated():
    with pytest.raises(NpyFormatError):
        read_npy_header(io.BytesIO(b"\x93NUM"))


@pytest.mark.parametrize("dtype", [np.float32, np.float64, np.int32, np.uint8, np.bool_])
def test_npy_save_readable_by_numpy(tmp_path, dtype):
    arr = (np.arange(12).reshape(3, 4) % 2 == 0) if dtype is np.bool_ else np.arange(12, dtype=dtype).reshape(3, 4)
    path = tmp_path / "a.npy"
    npy_save(path, arr)
    np.testing.assert_array_equal(np.load(path), arr)


def test_npy_load_numpy_file(tmp_path):
    arr = np.linspace(0.0, 1.0, 10, dtype=np.float32).reshape(2, 5)
    path = tmp_path / "b.npy"
    np.save(path, arr)
    loaded = npy_load(path)
    assert loaded.shape == (2, 5)
    assert loaded.word_size == 4
    np.testing.assert_array_equal(loaded.as_array(), arr)


def test_npy_load_fortran_order(tmp_path):
    arr = np.asfortranarray(np.arange(6, dtype=np.int64).reshape(2, 3))
    path = tmp_path / "f.npy"
    np.save(path, arr)
    loaded = npy_load(path)
    assert loaded.fortran_order is True
    np.testing.assert_array_equal(loaded.as_array(), arr)


def test_npy_save_fortran_input_is_written_c_order(tmp_path):
    arr = np.asfortranarray(np.arange(6, dtype=np.float64).reshape(2, 3))
    path = tmp_path / "c.npy"
    npy_save(path, arr)
    loaded = npy_load(path)
    assert loaded.fortran_order is False
    np.testing.assert_array_equal(loaded.as_array(), arr)


def test_npy_save_append(tmp_path):
    first = np.arange(6, dtype=np.float32).reshape(2, 3)
    second = np.arange(12, dtype=np.float32).reshape(4, 3) + 100
    path = tmp_path / "app.npy"
    npy_save(path, first)
    npy_save(path, second, "a")
    np.testing.assert_array_equal(np.load(path), np.concatenate([first, second]))


def test_npy_save_append_creates_missing_file(tmp_path):
    arr = np.arange(3, dtype=np.int32)
    path = tmp_path / "new.npy"
    npy_save(path, arr, "a")
    np.testing.assert_array_equal(np.load(path), arr)


def test_npy_save_append_word_size_mismatch(tmp_path):
    path = tmp_path / "ws.npy"
    npy_save(path, np.zeros((2, 3), dtype=np.float32))
    with pytest.raises(ValueError):
        npy_save(path, np.zeros((2, 3), dtype=np.float64), "a")


def test_npy_save_append_shape_mismatch(tmp_path):
    path = tmp_path / "sh.npy"
    npy_save(path, np.zeros((2, 3), dtype=np.float32))
    with pytest.raises(ValueError):
        npy_save(path, np.zeros((2, 4), dtype=np.float32), "a")
    with pytest.raises(ValueError):
        npy_save(path, np.zeros(3, dtype=np.float32), "a")


def test_npy_save_bad_mode_and_scalar(tmp_path):
    with pytest.raises(ValueError):
        npy_save(tmp_path / "m.npy", np.zeros(2), "x")
    with pytest.raises(ValueError):
        npy_save(tmp_path / "s.npy", np.float32(1.0))


def test_npy_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        npy_load(tmp_path / "absent.npy")


def test_npz_save_is_valid_zip(tmp_path):
    arr = np.arange(10, dtype=np.float64)
    path = tmp_path / "a.npz"
    npz_save(path, "depth", arr)
    with zipfile.ZipFile(path) as zf:
        assert zf.testzip() is None
        assert zf.namelist() == ["depth.npy"]
    with np.load(path) as npz:
        np.testing.assert_array_equal(npz["depth"], arr)


def test_npz_save_append_and_load_all(tmp_path):
    a = np.arange(4, dtype=np.int32)
    b = np.arange(6, dtype=np.float32).reshape(2, 3)
    path = tmp_path / "two.npz"
    npz_save(path, "a", a)
    npz_save(path, "b", b, "a")
    nrecs, _, _ = parse_zip_footer(path.read_bytes())
    assert nrecs == 2
    loaded = npz_load_all(path)
    assert sorted(loaded) == ["a", "b"]
    np.testing.assert_array_equal(loaded["a"].as_array(), a)
    np.testing.assert_array_equal(loaded["b"].as_array(), b)
    with zipfile.ZipFile(path) as zf:
        assert zf.testzip() is None


def test_npz_load_by_name(tmp_path):
    a = np.arange(3, dtype=np.uint8)
    b = np.arange(5, dtype=np.int64)
    path = tmp_path / "n.npz"
    npz_save(path, "first", a)
    npz_save(path, "second", b, "a")
    np.testing.assert_array_equal(npz_load(path, "second").as_array(), b)
    np.testing.assert_array_equal(npz_load(path, "first").as_array(), a)


def test_npz_load_missing_name(tmp_path):
    path = tmp_path / "m.npz"
    npz_save(path, "x", np.zeros(2))
    with pytest.raises(KeyError):
        npz_load(path, "y")


def test_npz_load_numpy_savez(tmp_path):
    a = np.arange(8, dtype=np.float32)
    b = np.eye(3)
    path = tmp_path / "np.npz"
    np.savez(path, a=a, b=b)
    loaded = npz_load_all(path)
    np.testing.assert_array_equal(loaded["a"].as_array(), a)
    np.testing.assert_array_equal(loaded["b"].as_array(), b)


def test_npz_load_numpy_savez_compressed(tmp_path):
    a = np.zeros((20, 20), dtype=np.float64)
    b = np.arange(50, dtype=np.int32)
    path = tmp_path / "npc.npz"
    np.savez_compressed(path, a=a, b=b)
    np.testing.assert_array_equal(npz_load(path, "b").as_array(), b)
    np.testing.assert_array_equal(npz_load(path, "a").as_array(), a)


def test_npz_load_deflated_entry(tmp_path):
    arr = np.arange(100, dtype=np.int16)
    path = tmp_path / "d.npz"
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("vals.npy", _numpy_npy_bytes(arr))
    np.testing.assert_array_equal(npz_load(path, "vals").as_array(), arr)


def test_parse_zip_footer_values():
    footer = struct.pack("<4s4HIIH", b"PK\x05\x06", 0, 0, 2, 2, 92, 310, 0)
    assert parse_zip_footer(b"junk" + footer) == (2, 92, 310)


def test_parse_zip_footer_rejects_comment_and_short():
    footer = struct.pack("<4s4HIIH", b"PK\x05\x06", 0, 0, 1, 1, 10, 20, 5)
    with pytest.raises(NpyFormatError):
        parse_zip_footer(footer)
    with pytest.raises(NpyFormatError):
        parse_zip_footer(b"PK")


def test_npyarray_zero_filled_and_sizes():
    arr = NpyArray((2, 3), 4, type_char="f")
    assert arr.num_vals == 6
    assert arr.num_bytes == 24
    np.testing.assert_array_equal(arr.as_array(), np.zeros((2, 3), dtype=np.float32))


def test_npyarray_rejects_wrong_data_length():
    with pytest.raises(ValueError):
        NpyArray((2,), 4, data=b"\x00" * 7)


def test_npyarray_as_array_dtype_checks():
    arr = NpyArray((2,), 4, data=np.array([1, 2], dtype="<i4").tobytes())
    with pytest.raises(ValueError):
        arr.as_array()
    with pytest.raises(ValueError):
        arr.as_array(np.float64)
    np.testing.assert_array_equal(arr.as_array("<i4"), np.array([1, 2], dtype=np.int32))