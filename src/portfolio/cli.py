"""
Click CLI implementation for the portfolio tracker.

This module provides the command-line front-end: recording holdings,
listing their value, symbol search and a live refreshing view of the
watchlist ticker and holdings.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from src.config import FinnhubConfig
from src.market_data.finnhub_client import FinnhubClient

from .config import ConfigurationError, TrackerConfig
from .exceptions import PersistenceError
from .form import AddResult, AddStockForm
from .models import Holding, SuggestionEntry, TickerEntry
from .scheduler import RefreshScheduler
from .search import SymbolSearchDebouncer
from .storage import SQLiteStorage
from .store import PortfolioStore

logger = logging.getLogger(__name__)


@dataclass
class CLIContext:
    """Context object passed to all CLI commands.

    Attributes:
        config: Configuration settings
        store: Portfolio store backed by the configured database
        verbose: Verbose output enabled
    """

    config: TrackerConfig
    store: PortfolioStore
    verbose: bool


def get_cli_context(ctx: click.Context) -> CLIContext:
    return ctx.obj


def create_client(key_file: Optional[str] = None) -> FinnhubClient:
    """Build the Finnhub client from a key file or FINNHUB_API_KEY.

    Args:
        key_file: Explicit key file; None searches the default locations

    Raises:
        ValueError: If no API key is configured
    """
    return FinnhubClient(FinnhubConfig.load(key_file))


def print_error(message: str) -> None:
    """Print error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def print_success(message: str) -> None:
    """Print success message."""
    click.secho(message, fg="green")


def print_notification(title: str, message: str) -> None:
    """Show a user-facing alert raised by the add-stock form."""
    click.secho(f"{title}: {message}", fg="yellow", err=True)


def print_holdings(holdings: list[Holding], total_value: float) -> None:
    """Print holdings as a table followed by the portfolio total."""
    click.echo()
    click.echo(f"Total Value: ${total_value:,.2f}")
    click.echo()
    click.echo(f"{'Symbol':<10} {'Shares':>10} {'Price':>12} {'Value':>14}")
    click.echo("=" * 49)

    if not holdings:
        click.echo("No stocks yet. Add one to get started!")
        return

    for holding in holdings:
        click.echo(
            f"{holding.symbol:<10} "
            f"{holding.quantity:>10} "
            f"{'$' + format(holding.price, ',.2f'):>12} "
            f"{'$' + format(holding.value, ',.2f'):>14}"
        )


def print_ticker(entries: list[TickerEntry]) -> None:
    """Print one line of the watchlist feed."""
    if not entries:
        click.echo("Live feed: no data")
        return
    feed = "  |  ".join(f"{e.symbol} {e.name} ${e.price:,.2f}" for e in entries)
    click.echo(f"Live feed: {feed}")


def print_suggestions(suggestions: list[SuggestionEntry]) -> None:
    if not suggestions:
        click.echo("No matching symbols.")
        return
    for suggestion in suggestions:
        click.echo(f"{suggestion.symbol} - {suggestion.description}")


@click.group()
@click.option(
    "--db",
    default=None,
    help="Database file path (overrides config)",
    envvar="PORTFOLIO_DB_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--config-file",
    type=click.Path(exists=True),
    help="Path to configuration file",
)
@click.pass_context
def cli(
    ctx: click.Context,
    db: Optional[str],
    verbose: bool,
    config_file: Optional[str],
) -> None:
    """
    Stock Portfolio Tracker - record holdings and follow live prices.

    Prices come from Finnhub. Set FINNHUB_API_KEY, or put the line
    finnhub_api_key = '...' in ./config/finnhub_api_key.txt or
    ~/.stock_portfolio/finnhub_api_key.txt.
    """
    try:
        config = TrackerConfig.load_from_file(Path(config_file) if config_file else None)
    except ConfigurationError as e:
        if verbose:
            click.echo(f"! Could not load config file: {e}", err=True)
            click.echo("  Using default configuration")
        config = TrackerConfig()

    if db:
        config.db_path = db
    if verbose:
        config.verbose = True

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        storage = SQLiteStorage(config.db_path)
    except PersistenceError as e:
        print_error(str(e))
        sys.exit(1)

    ctx.obj = CLIContext(
        config=config,
        store=PortfolioStore(storage, storage_key=config.storage_key),
        verbose=config.verbose,
    )


def _client_or_exit(cli_ctx: CLIContext) -> FinnhubClient:
    try:
        return create_client(cli_ctx.config.api_key_file)
    except ValueError as e:
        print_error(str(e))
        sys.exit(1)


async def _add_stock(
    cli_ctx: CLIContext, client: FinnhubClient, symbol: str, quantity: str
) -> AddResult:
    async with client:
        form = AddStockForm(
            client,
            cli_ctx.store,
            notify=print_notification,
            search=SymbolSearchDebouncer(
                client,
                delay=cli_ctx.config.search_delay,
                min_length=cli_ctx.config.min_search_length,
            ),
        )
        form.open()
        form.search.set_text(symbol)
        form.set_quantity(quantity)
        result = await form.submit()
        if result == AddResult.FAILED and cli_ctx.verbose and form.error:
            click.echo(f"  Provider said: {form.error}", err=True)
        return result


@cli.command("add")
@click.argument("symbol")
@click.argument("quantity")
@click.pass_context
def add(ctx: click.Context, symbol: str, quantity: str) -> None:
    """
    Add QUANTITY shares of SYMBOL at the current market price.

    Adding a symbol already held increases its share count.

    Example: portfolio add AAPL 10
    """
    cli_ctx = get_cli_context(ctx)
    client = _client_or_exit(cli_ctx)

    result = asyncio.run(_add_stock(cli_ctx, client, symbol, quantity))
    cli_ctx.store.close()

    if result != AddResult.ADDED:
        sys.exit(1)

    holding = cli_ctx.store.get(symbol.strip().upper())
    print_success(
        f"Added {symbol.strip().upper()}: now {holding.quantity} shares at ${holding.price:,.2f}"
    )


@cli.command("remove")
@click.argument("symbol")
@click.pass_context
def remove(ctx: click.Context, symbol: str) -> None:
    """
    Remove SYMBOL from the portfolio.

    Example: portfolio remove AAPL
    """
    cli_ctx = get_cli_context(ctx)
    symbol = symbol.strip().upper()

    if symbol not in cli_ctx.store:
        click.echo(f"{symbol} is not in the portfolio.")
        return

    cli_ctx.store.remove_stock(symbol)
    print_success(f"Removed {symbol}")


@cli.command("clear")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Remove every holding."""
    cli_ctx = get_cli_context(ctx)

    if not yes:
        click.confirm("Remove all holdings?", abort=True)

    cli_ctx.store.clear_portfolio()
    print_success("Portfolio cleared")


@cli.command("list")
@click.option("--filter", "query", default="", help="Only symbols containing this text")
@click.pass_context
def list_holdings(ctx: click.Context, query: str) -> None:
    """
    List holdings with their last known price and value.

    Example: portfolio list --filter aa
    """
    cli_ctx = get_cli_context(ctx)
    store = cli_ctx.store
    print_holdings(store.filter_holdings(query), store.total_value)


async def _search(cli_ctx: CLIContext, client: FinnhubClient, text: str) -> list[SuggestionEntry]:
    async with client:
        debouncer = SymbolSearchDebouncer(
            client,
            delay=cli_ctx.config.search_delay,
            min_length=cli_ctx.config.min_search_length,
        )
        debouncer.on_input_change(text)
        await debouncer.wait()
        return debouncer.suggestions


@cli.command("search")
@click.argument("text")
@click.pass_context
def search(ctx: click.Context, text: str) -> None:
    """
    Look up symbols matching TEXT.

    Example: portfolio search apple
    """
    cli_ctx = get_cli_context(ctx)
    client = _client_or_exit(cli_ctx)

    suggestions = asyncio.run(_search(cli_ctx, client, text))
    print_suggestions(suggestions)


async def _watch(cli_ctx: CLIContext, client: FinnhubClient, cycles: int) -> None:
    store = cli_ctx.store
    config = cli_ctx.config
    done = asyncio.Event()
    seen = 0

    def on_ticker(entries: list[TickerEntry]) -> None:
        nonlocal seen
        seen += 1
        print_ticker(entries)
        print_holdings(store.holdings, store.total_value)
        if cycles and seen >= cycles:
            done.set()

    async with client:
        scheduler = RefreshScheduler(
            client,
            store,
            watchlist=config.watchlist,
            watchlist_interval=config.watchlist_interval,
            holdings_interval=config.holdings_interval,
        )
        scheduler.subscribe(on_ticker)
        scheduler.start()
        try:
            await done.wait()
        finally:
            scheduler.stop()
            # Give the scheduler its shutdown callback before the loop closes
            await asyncio.sleep(0)
            await store.drain()


@cli.command("watch")
@click.option("--cycles", type=int, default=0, help="Stop after N ticker refreshes (0 = run until Ctrl-C)")
@click.pass_context
def watch(ctx: click.Context, cycles: int) -> None:
    """
    Show the live ticker feed and keep holdings prices fresh.

    Example: portfolio watch
    """
    cli_ctx = get_cli_context(ctx)
    client = _client_or_exit(cli_ctx)

    try:
        asyncio.run(_watch(cli_ctx, client, cycles))
    except KeyboardInterrupt:
        click.echo("Stopped.")
    finally:
        cli_ctx.store.close()


def main():
    cli()


if __name__ == "__main__":
    main()
