"""Detect performance and resource defects in JS/TS sources and synthesize ranked fixes."""

__version__ = "0.1.0"
