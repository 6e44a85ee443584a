"""
Distributed escape-time fractal fields and hexahedral mesh emission.
"""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("fractalmesh")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
