[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mqmgate"
version = "0.1.0"
description = "Gateway core that publishes Modbus register data as MQTT topics and turns MQTT commands into register values"
requires-python = ">=3.10"
keywords = ["modbus", "mqtt", "gateway", "home-automation", "iot"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
]
dependencies = [
    "paho-mqtt",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["mqmgate"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
