"""FHE key bootstrap protocol package.

This package contains the peer-side protocol components:
- config: Configuration loading and management
- peer: Command mapping, contract, ledger state and terminal surface
- fhe: Seed derivation, encryption capability and the key bootstrap flow
"""

from __future__ import annotations

__all__: list[str] = []
