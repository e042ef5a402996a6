[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dsoutil"
version = "0.1.0"
description = "Settings, camera pyramids, projection, photometric correction, pixel selection and .npy/.npz I/O for direct visual odometry"
requires-python = ">=3.10"
keywords = [
    "visual odometry",
    "camera pyramid",
    "photometric calibration",
    "pixel selection",
    "npy",
    "npz",
    "computer vision",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dsoutil"]

[tool.hatch.build.targets.sdist]
include = ["dsoutil", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
