#!/usr/bin/env python3
"""
FHE key bootstrap peer - terminal runner

Usage:
    python run.py                                 # Interactive terminal
    python run.py --command "/myage 42"           # Run one command and exit
    python run.py --config path/to/config.yaml    # Use another config file

The wallet secret is read from $FHE_WALLET_SECRET (a .env file works);
without it a fresh wallet is generated for the session.
"""

from __future__ import annotations

import argparse
import asyncio

from dotenv import load_dotenv

from fhe_protocol.config import configure_logging, load_config, set_config_value
from fhe_protocol.peer.protocol import FheProtocol
from fhe_protocol.peer.wallet import Wallet

# Load environment variables
load_dotenv()

EXIT_COMMANDS = frozenset({"/exit", "/quit"})


def load_wallet(quiet: bool = False) -> Wallet:
    """Wallet from the environment, or a new one for this session."""
    wallet = Wallet.from_env()
    if wallet is not None:
        return wallet
    wallet = Wallet.generate()
    if not quiet:
        print(f"No FHE_WALLET_SECRET set; generated session wallet {wallet.public_key}")
    return wallet


async def run_terminal(protocol: FheProtocol, commands: list[str] | None = None) -> None:
    """Run the given commands, or read commands from stdin until /exit."""
    if commands:
        for command in commands:
            await protocol.custom_command(command)
        return

    protocol.print_options()
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue
        if line in EXIT_COMMANDS:
            break
        await protocol.custom_command(line)


def main() -> None:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Run an FHE key bootstrap peer terminal"
    )
    parser.add_argument(
        "--config", default=None, help="Path to config file (default: config/config.yaml)"
    )
    parser.add_argument(
        "--command",
        action="append",
        default=None,
        help="Run a terminal command and exit (repeatable)",
    )
    parser.add_argument(
        "--no-tx",
        action="store_true",
        help="Do not expose automatic transaction broadcast",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress startup output")
    args: argparse.Namespace = parser.parse_args()

    load_config(args.config)
    if args.no_tx:
        set_config_value("peer.api_tx_exposed", False)
    configure_logging()

    wallet = load_wallet(quiet=args.quiet)
    protocol = FheProtocol.from_config(wallet=wallet)
    asyncio.run(run_terminal(protocol, args.command))


if __name__ == "__main__":
    main()
