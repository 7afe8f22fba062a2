"""wheelbook command line interface."""
