"""Main entry point when executing askcli as a package.

This allows running the package using python -m askcli.
"""

from askcli.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
