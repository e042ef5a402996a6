"""Settings, camera pyramids, projection, images, photometric correction, pixel selection and .npy/.npz I/O for direct visual odometry."""

__version__ = "0.1.0"

__all__ = [
    "calibration",
    "image",
    "npy",
    "numtypes",
    "photometric",
    "pixel_selector",
    "projection",
    "settings",
    "thread_reduce",
]