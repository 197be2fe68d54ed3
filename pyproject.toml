[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stepflash"
version = "0.1.0"
description = "Stepper motor motion profiles and a small filesystem for SPI serial flash, with pluggable hardware back ends"
requires-python = ">=3.10"
dependencies = []
keywords = ["stepper", "motor", "acceleration", "spi", "flash", "filesystem", "embedded"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["stepflash"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
