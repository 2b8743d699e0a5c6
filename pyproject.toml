[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "broutemeter"
version = "0.1.0"
description = "Read Japanese low-voltage smart electricity meters over the B-route through a BP35A1 Wi-SUN module"
requires-python = ">=3.10"
dependencies = []
keywords = ["smart meter", "b-route", "wi-sun", "echonet lite", "bp35a1", "electricity"]
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
    "Topic :: Home Automation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["broutemeter"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
