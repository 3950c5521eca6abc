from . import cli_entry

cli_entry()
