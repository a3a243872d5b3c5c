[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ampersand"
version = "0.1.0"
description = "Building blocks for an amateur radio voice-link node: messages, PCM transcoders, resampling, jitter and retransmission buffers, and node housekeeping tasks."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "ham radio",
    "amateur radio",
    "iax2",
    "voip",
    "jitter buffer",
    "resampler",
    "pcm",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Ham Radio",
    "Topic :: Communications :: Internet Phone",
    "Topic :: Multimedia :: Sound/Audio",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ampersand"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
