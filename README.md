# dsoutil

Building blocks for direct monocular visual odometry:

- **Settings** (`dsoutil.settings`): the `Settings` dataclass with every tunable
  parameter and its default, the `SolverMode` flags, and the static residual
  patterns (`static_pattern(index)`, `pattern_padding(index)`, plus `PATTERN`,
  `PATTERN_NUM` and `PATTERN_PADDING` for the pattern in use).
  `Settings.handle_key("d")` / `("s")` step `free_debug_param5` up or down modulo 10.
- **Camera pyramid** (`dsoutil.calibration`): `set_global_calib(w, h, K)` returns
  a `GlobalCalibration` holding one `CalibrationLevel` (size, `K`, `Ki`, and
  `fx`, `fy`, `cx`, `cy`, `fxi`, ... properties) per pyramid level, together
  with `w_m3` and `h_m3` (width and height minus three).
- **Geometry** (`dsoutil.numtypes`, `dsoutil.projection`): the affine brightness
  model `AffLight` with `vec()` and `AffLight.from_to_vec_exposure(...)`, the
  per-frame record `FrameShell` (poses are 4x4 matrices), and point projection
  with `project_point`, `project_point_full` (returns a `Projection` or `None`)
  and `derive_idepth`. Pinhole intrinsics are given as `Intrinsics(fx, fy, cx, cy)`.
- **Images** (`dsoutil.image`): `MinimalImage`, a row-major image indexed by
  `(x, y)` or a flat index, with `clone`, `set_black`, `set_const` and the
  `set_pixel1/4/9` and `set_pixel_circ` drawing helpers; and `ImageAndExposure`,
  an irradiance image with depth, timestamp and exposure time.
- **Parallel reduction** (`dsoutil.thread_reduce`): `IndexThreadReduce` splits an
  index range into chunks, runs them on worker threads and sums the partial
  results.
- **NumPy files** (`dsoutil.npy`): read and write `.npy` files and `.npz`
  archives (`npy_load`, `npy_save`, `npz_load`, `npz_load_all`, `npz_save`),
  plus the header helpers `create_npy_header`, `parse_npy_header`,
  `read_npy_header` and `parse_zip_footer`. Loaded arrays come back as
  `NpyArray`; `as_array()` turns them into numpy arrays.
- **Pixel selection** (`dsoutil.pixel_selector`): `grid_max_selection` picks the
  strongest-gradient pixels in each block of a grid; `make_pixel_status` adapts
  the block size until roughly the desired number of pixels is selected. Both
  return a `PixelStatus` (`mask`, `num_good`, `sparsity_factor`, `th_fac`).
- **Photometric correction** (`dsoutil.photometric`): `PhotometricUndistorter`
  reads an inverse response curve (first line of a text file, at least 256
  strictly increasing values) and a vignette image (8- or 16-bit, same size as
  the frames), and converts raw frames to irradiance with `process_frame`.

## Installation

```
pip install .
```

Tests need the `test` extra:

```
pip install .[test]
pytest
```

## Examples

Camera pyramid:

```python
import numpy as np
from dsoutil.calibration import set_global_calib

K = np.array([[500.0, 0.0, 319.5], [0.0, 500.0, 239.5], [0.0, 0.0, 1.0]])
calib = set_global_calib(640, 480, K)
print(calib.pyr_levels_used)          # 4
print(calib[3].width, calib[3].height)  # 80 60
```

Saving and loading arrays:

```python
import numpy as np
from dsoutil.npy import npy_load, npy_save, npz_load, npz_save

npy_save("depth.npy", np.ones((2, 3), dtype=np.float32))
npy_save("depth.npy", np.zeros((1, 3), dtype=np.float32), mode="a")
print(npy_load("depth.npy").as_array().shape)   # (3, 3)

npz_save("frames.npz", "depth", np.arange(4, dtype=np.int32))
print(npz_load("frames.npz", "depth").as_array())
```

Parallel reduction:

```python
from dsoutil.thread_reduce import IndexThreadReduce

with IndexThreadReduce(zero=lambda: 0) as reducer:
    total = reducer.reduce(lambda start, stop, tid: sum(range(start, stop)), 0, 100)
print(total)  # 4950
```

Photometric correction:

```python
import numpy as np
from dsoutil.photometric import PhotometricUndistorter
from dsoutil.settings import Settings

undistorter = PhotometricUndistorter("pcalib.txt", "", "vignette.png", 640, 480, Settings())
raw = np.zeros((480, 640), dtype=np.uint8)
frame = undistorter.process_frame(raw, exposure_time=10.0)
print(frame.image.dtype, frame.exposure_time)
```

If either calibration file is missing or malformed, the undistorter is left
with `valid == False` and `process_frame` only multiplies the input by `factor`.

## Errors

Problems are raised as exceptions: `NpyFormatError` (a `ValueError`) for
malformed `.npy` headers or `.npz` archives, `KeyError` when `npz_load` does not
find the requested name, and `ValueError` for arguments that do not fit
(wrong image sizes, bad shapes, unsupported dtypes or modes).

## What this package does not do

It does not read camera model files or rectify images geometrically (no lens
distortion models, no remapping to an undistorted camera), and it has no
reader for folders of images and depth maps. There is no command-line program,
no viewer and no tracking or mapping pipeline; the modules above are the pieces
such a system is built from.