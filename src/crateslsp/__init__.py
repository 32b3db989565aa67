"""crateslsp – Language Server for Cargo manifests."""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version('crates-lsp')
except PackageNotFoundError:
    __version__ = '0.0.0.dev0'
