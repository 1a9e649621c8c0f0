"""Utility helpers for solidauth."""

from .async_helpers import fire_and_forget


__all__ = ["fire_and_forget"]
