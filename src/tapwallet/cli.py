"""
Tapyrus wallet CLI - Generate keys, check balances, send, burn and issue tokens.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from loguru import logger
from pydantic import ValidationError

from tapwallet.backends.esplora import EsploraBackend
from tapwallet.config import Settings
from tapwallet.errors import PartialIssuanceError, WalletError
from tapwallet.registry import TokenRegistry, TTLCache
from tapwallet.wallet.address import validate_address
from tapwallet.wallet.bip32 import unlocked_key
from tapwallet.wallet.issuance import PartialIssuance
from tapwallet.wallet.mnemonic import generate_mnemonic, validate_mnemonic
from tapwallet.wallet.service import WalletService

T = TypeVar("T")

app = typer.Typer(
    name="tapwallet",
    help="Tapyrus colored coin wallet",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_settings(**overrides: Any) -> Settings:
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(1)


def _configure(log_level: str | None, **overrides: Any) -> Settings:
    """Load settings, then log at ``--log-level`` or the configured level."""
    settings = _load_settings(**overrides)
    setup_logging(log_level or settings.log_level)
    return settings


def _load_mnemonic(mnemonic: str | None, mnemonic_file: Path | None) -> str:
    if mnemonic_file:
        if not mnemonic_file.exists():
            logger.error(f"Mnemonic file not found: {mnemonic_file}")
            raise typer.Exit(1)
        mnemonic = mnemonic_file.read_text().strip()

    if not mnemonic:
        logger.error("Mnemonic required. Use --mnemonic, --mnemonic-file, or MNEMONIC env var")
        raise typer.Exit(1)
    return mnemonic


def _metadata_from_options(
    token_type: str,
    name: str | None,
    symbol: str | None,
    decimals: int | None,
    description: str | None,
    metadata_file: Path | None,
) -> dict[str, Any]:
    if metadata_file:
        try:
            metadata: dict[str, Any] = json.loads(metadata_file.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"Cannot read metadata file: {e}")
            raise typer.Exit(1)
        if "token_type" not in metadata and "tokenType" not in metadata:
            metadata["token_type"] = token_type
        return metadata

    if not name or not symbol:
        logger.error("--name and --symbol are required without --metadata-file")
        raise typer.Exit(1)
    metadata = {"name": name, "symbol": symbol, "token_type": token_type}
    if decimals is not None:
        metadata["decimals"] = decimals
    if description:
        metadata["description"] = description
    return metadata


def _run(settings: Settings, operation: Callable[[WalletService], Awaitable[T]]) -> T:
    """Run ``operation`` against a wallet service, mapping wallet errors to exit status 1."""

    async def runner() -> T:
        backend = EsploraBackend(settings.explorer_url, timeout=settings.request_timeout)
        wallet = WalletService.from_settings(backend, settings)
        try:
            return await operation(wallet)
        finally:
            await wallet.close()

    try:
        return asyncio.run(runner())
    except PartialIssuanceError as e:
        logger.error(f"[{e.code}] {e.message}")
        typer.echo(json.dumps(e.partial.to_dict(), indent=2))
        typer.echo("Save this record and finish the issuance with `tapwallet resume-issue`.")
        raise typer.Exit(1)
    except WalletError as e:
        logger.error(f"[{e.code}] {e.message}")
        raise typer.Exit(1)


@app.command()
def generate(
    word_count: int = typer.Option(12, "--words", "-w", help="Number of words (12 or 24)"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Generate a new BIP39 mnemonic phrase."""
    _configure(log_level)

    strength = {12: 128, 24: 256}.get(word_count)
    if strength is None:
        logger.error("Word count must be 12 or 24")
        raise typer.Exit(1)

    mnemonic = generate_mnemonic(strength)
    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\n{mnemonic}\n")
    typer.echo("=" * 80)
    typer.echo("\nAnyone with this phrase can spend your coins and tokens.")
    typer.echo("=" * 80 + "\n")


@app.command()
def address(
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(
        None, "--mnemonic-file", "-f", help="Path to mnemonic file"
    ),
    network: str | None = typer.Option(None, "--network", "-n", help="prod | dev"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the wallet's receive address."""
    settings = _configure(log_level, network=network)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    if not validate_mnemonic(mnemonic):
        logger.error("Invalid mnemonic")
        raise typer.Exit(1)
    try:
        with unlocked_key(
            mnemonic, settings.network, settings.network_id, settings.key_index
        ) as keys:
            typer.echo(keys.address)
    except WalletError as e:
        logger.error(f"[{e.code}] {e.message}")
        raise typer.Exit(1)


@app.command()
def balance(
    address: str | None = typer.Argument(None, help="Address (default: the wallet's own)"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC", help="BIP39 mnemonic"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    with_metadata: bool = typer.Option(
        True, "--metadata/--no-metadata", help="Look up token names in the registry"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show TPC and token balances."""
    settings = _configure(log_level, network=network)
    if address and not validate_address(address, settings.network):
        logger.error(f"Not a {settings.network} address: {address}")
        raise typer.Exit(1)
    own_mnemonic = None if address else _load_mnemonic(mnemonic, mnemonic_file)

    async def show(wallet: WalletService) -> None:
        target = address or wallet.get_address(own_mnemonic)  # type: ignore[arg-type]
        native, assets = await wallet.get_balances(target)

        symbols: dict[str, str] = {}
        if assets and with_metadata:
            registry = TokenRegistry(
                TTLCache(settings.metadata_cache_size, settings.metadata_cache_ttl),
                base_url=settings.registry_url,
                network_id=settings.network_id,
                timeout=settings.request_timeout,
            )
            try:
                found = await registry.get_metadata_batch(a.color_id for a in assets)
            finally:
                await registry.close()
            symbols = {color_id: m.symbol for color_id, m in found.items()}

        typer.echo(f"\nAddress: {target}")
        typer.echo(
            f"TPC: {native.total:,} tapyrus "
            f"(confirmed {native.confirmed:,}, unconfirmed {native.unconfirmed:,})"
        )
        if assets:
            typer.echo("\nTokens:")
        for asset in assets:
            label = symbols.get(asset.color_id, "")
            typer.echo(f"  {asset.color_id}  {asset.total:>20,}  {label}")

    _run(settings, show)


@app.command()
def send(
    to_address: str = typer.Argument(..., help="Recipient address"),
    amount: int = typer.Argument(..., help="Amount in tapyrus"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    fee_rate: int | None = typer.Option(None, "--fee-rate", help="tapyrus per byte"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Send TPC."""
    settings = _configure(log_level, network=network, fee_rate=fee_rate)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    result = _run(settings, lambda wallet: wallet.send(mnemonic, to_address, amount))
    typer.echo(f"txid: {result.txid}")
    typer.echo(f"fee:  {result.fee}")


@app.command("send-asset")
def send_asset(
    color_id: str = typer.Argument(..., help="Token color id"),
    to_address: str = typer.Argument(..., help="Recipient address"),
    amount: int = typer.Argument(..., help="Amount in token units"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    fee_rate: int | None = typer.Option(None, "--fee-rate"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Transfer a token."""
    settings = _configure(log_level, network=network, fee_rate=fee_rate)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    result = _run(
        settings, lambda wallet: wallet.send_asset(mnemonic, color_id, to_address, amount)
    )
    typer.echo(f"txid: {result.txid}")
    typer.echo(f"fee:  {result.fee}")


@app.command()
def burn(
    color_id: str = typer.Argument(..., help="Token color id"),
    amount: int = typer.Argument(..., help="Amount in token units"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    fee_rate: int | None = typer.Option(None, "--fee-rate"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Burn (destroy) tokens."""
    settings = _configure(log_level, network=network, fee_rate=fee_rate)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    if not yes:
        typer.confirm(f"Permanently destroy {amount} of {color_id}?", abort=True)

    result = _run(settings, lambda wallet: wallet.burn_asset(mnemonic, color_id, amount))
    typer.echo(f"txid: {result.txid}")
    typer.echo(f"fee:  {result.fee}")


@app.command()
def issue(
    token_type: str = typer.Option(
        "reissuable", "--type", "-t", help="reissuable | non_reissuable | nft"
    ),
    name: str | None = typer.Option(None, "--name"),
    symbol: str | None = typer.Option(None, "--symbol"),
    amount: int | None = typer.Option(None, "--amount", "-a", help="Omit for NFTs"),
    decimals: int | None = typer.Option(None, "--decimals"),
    description: str | None = typer.Option(None, "--description"),
    metadata_file: Path | None = typer.Option(
        None, "--metadata-file", help="JSON metadata (overrides --name/--symbol/...)"
    ),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    fee_rate: int | None = typer.Option(None, "--fee-rate"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Issue a new token."""
    settings = _configure(log_level, network=network, fee_rate=fee_rate)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    metadata = _metadata_from_options(
        token_type, name, symbol, decimals, description, metadata_file
    )

    result = _run(
        settings, lambda wallet: wallet.issue_token(mnemonic, metadata, token_type, amount)
    )
    typer.echo(f"txid:         {result.txid}")
    typer.echo(f"color id:     {result.color_id}")
    typer.echo(f"payment base: {result.payment_base}")
    if result.out_point:
        typer.echo(f"out point:    {result.out_point}")


@app.command("p2c-address")
def p2c_address(
    name: str | None = typer.Option(None, "--name"),
    symbol: str | None = typer.Option(None, "--symbol"),
    decimals: int | None = typer.Option(None, "--decimals"),
    description: str | None = typer.Option(None, "--description"),
    metadata_file: Path | None = typer.Option(None, "--metadata-file"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the address to fund before issuing a reissuable token."""
    settings = _configure(log_level, network=network)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)
    metadata = _metadata_from_options(
        "reissuable", name, symbol, decimals, description, metadata_file
    )

    async def show(wallet: WalletService) -> str:
        return wallet.get_p2c_address(mnemonic, metadata)

    typer.echo(_run(settings, show))


@app.command("resume-issue")
def resume_issue(
    partial_file: Path = typer.Argument(..., help="JSON record printed by a failed issue"),
    mnemonic: str = typer.Option(None, "--mnemonic", envvar="MNEMONIC"),
    mnemonic_file: Path | None = typer.Option(None, "--mnemonic-file", "-f"),
    network: str | None = typer.Option(None, "--network", "-n"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Finish an issuance whose funding transaction was already broadcast."""
    settings = _configure(log_level, network=network)
    mnemonic = _load_mnemonic(mnemonic, mnemonic_file)

    try:
        partial = PartialIssuance.from_dict(json.loads(partial_file.read_text()))
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read partial issuance record: {e}")
        raise typer.Exit(1)

    result = _run(settings, lambda wallet: wallet.resume_issuance(mnemonic, partial))
    typer.echo(f"txid:     {result.txid}")
    typer.echo(f"color id: {result.color_id}")


@app.command()
def status(
    txid: str = typer.Argument(..., help="Transaction id"),
    wait: bool = typer.Option(False, "--wait", help="Poll until confirmed"),
    interval: float = typer.Option(10.0, "--interval", help="Seconds between polls"),
    max_attempts: int = typer.Option(30, "--max-attempts"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show whether a transaction is confirmed."""
    settings = _configure(log_level)

    async def check(wallet: WalletService) -> str:
        if wait:
            confirmed = await wallet.poll_until_confirmed(txid, interval, max_attempts)
            return "confirmed" if confirmed else "unconfirmed"
        tx_status = await wallet.get_transaction_status(txid)
        if tx_status is None:
            return "unknown"
        if tx_status.confirmed:
            return f"confirmed (block {tx_status.block_height})"
        return "unconfirmed"

    typer.echo(_run(settings, check))


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
