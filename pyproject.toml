[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hdlink"
version = "0.1.0"
description = "Small HTTP/WebSocket client, URI parser, and protocol codecs for PZEM energy meters and BMP180 pressure sensors"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "websocket", "uri", "headers", "pzem", "modbus", "crc16", "bmp180", "sensor"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hdlink"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
