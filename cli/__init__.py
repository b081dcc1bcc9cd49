"""Command line driver for the battery simulation."""
