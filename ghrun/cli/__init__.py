"""ghrun command line interface."""
