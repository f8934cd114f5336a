"""Seed derivation, encryption capability and key bootstrap."""

from __future__ import annotations

__all__: list[str] = []
