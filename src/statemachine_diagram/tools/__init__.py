"""Renderer and command line entry points."""
