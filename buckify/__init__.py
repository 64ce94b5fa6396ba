"""Generate and incrementally synchronize Buck2 BUCK files from Cargo metadata."""

__version__ = "0.1.0"

from .errors import BuckifyError  # noqa: E402
from .metadata import BuckifyContext  # noqa: E402
from .sync import run_sync  # noqa: E402

__all__ = ["BuckifyContext", "BuckifyError", "__version__", "run_sync"]
