"""Core security primitives."""
