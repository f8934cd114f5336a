"""Peer-side protocol: commands, contract, state, tx and terminal surface.

Import submodules directly (e.g. `from fhe_protocol.peer.commands import
map_tx_command`); this package module stays import-free so the fhe
package can depend on peer.errors without a cycle.
"""

from __future__ import annotations

__all__: list[str] = []
