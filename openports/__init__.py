"""openports: listening TCP ports and docker containers, and the processes behind them."""
from .cli import _get_app_version, cli_entry

__version__ = _get_app_version()

__all__ = ["cli_entry", "__version__"]
