"""resguard command-line interface."""
