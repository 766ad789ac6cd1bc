"""Click CLI commands for strategy-lab."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

import click

from strategylab.config import VALID_RANK_METRICS, AppConfig
from strategylab.utils.logging import set_run_id, setup_logging

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from strategylab.backtest.config import BacktestConfig
    from strategylab.backtest.runner import BacktestResult
    from strategylab.backtest.sweep import SweepResult
    from strategylab.market.types import Bar


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Strategy Lab: backtest PineScript-style strategies against bar files."""
    cfg = AppConfig()
    setup_logging(level=cfg.log_level, log_format=cfg.log_format)
    set_run_id(uuid4().hex[:12])
    ctx.obj = cfg


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def inputs(script: Path) -> None:
    """List the parameters a strategy script declares."""
    from strategylab.script.inputs import parse_strategy

    parsed = parse_strategy(_read_script(script))
    click.echo(f"Strategy: {parsed.name}")
    if not parsed.inputs:
        click.echo("No numeric inputs declared.")
        return

    click.echo(f"{'Name':<20} {'Type':<6} {'Default':>10} {'Min':>10} {'Max':>10} {'Step':>8}  Title")
    for p in parsed.inputs:
        click.echo(
            f"{p.name:<20} {p.kind.value:<6} {p.default:>10g} {p.min_value:>10g} "
            f"{p.max_value:>10g} {p.step:>8g}  {p.title}"
        )


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("bars_file", metavar="BARS", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--symbol", default="", help="Symbol label for the result.")
@click.option("--timeframe", default="1d", show_default=True, help="Timeframe label.")
@click.option("--capital", type=float, default=None, help="Initial capital (default from config).")
@click.option("--commission", type=float, default=None, help="Commission percent per side (default from config).")
@click.option("--param", "param_pairs", multiple=True, metavar="NAME=VALUE", help="Override a script input. Repeatable.")
@click.option("--save", is_flag=True, help="Store the result in the database.")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.pass_obj
def backtest(
    cfg: AppConfig,
    script: Path,
    bars_file: Path,
    symbol: str,
    timeframe: str,
    capital: float | None,
    commission: float | None,
    param_pairs: tuple[str, ...],
    save: bool,
    as_json: bool,
) -> None:
    """Run one backtest of SCRIPT over the bars in BARS (.csv or .json)."""
    from strategylab.backtest.config import BacktestError
    from strategylab.backtest.runner import run_backtest

    source = _read_script(script)
    overrides = _parse_params(param_pairs)
    bars, bt_config = _prepare(cfg, source, bars_file, symbol, timeframe, capital, commission)

    try:
        result = run_backtest(bars, source, overrides, bt_config)
    except BacktestError as e:
        raise click.ClickException(str(e)) from e

    record_id: int | None = None
    if save:
        record_id = _save_result(cfg, source, result)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_backtest_results(result)
    if record_id is not None:
        click.echo(f"\nResult saved (record id: {record_id})")


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("bars_file", metavar="BARS", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--symbol", default="", help="Symbol label for the results.")
@click.option("--timeframe", default="1d", show_default=True, help="Timeframe label.")
@click.option("--max-combinations", type=int, default=None, help="Cap on parameter sets (default from config).")
@click.option("--workers", type=int, default=None, help="Worker threads (default from config).")
@click.option("--rank-by", type=click.Choice(sorted(VALID_RANK_METRICS)), default=None, help="Metric to rank by.")
@click.option("--top", "top_n", type=int, default=None, help="Number of results to show.")
@click.option("--smart", is_flag=True, help="Derive ranges from input names instead of declared bounds.")
@click.pass_obj
def sweep(
    cfg: AppConfig,
    script: Path,
    bars_file: Path,
    symbol: str,
    timeframe: str,
    max_combinations: int | None,
    workers: int | None,
    rank_by: str | None,
    top_n: int | None,
    smart: bool,
) -> None:
    """Backtest every combination of SCRIPT's input ranges and rank them."""
    from strategylab.backtest.config import BacktestError
    from strategylab.backtest.sweep import ranges_from_inputs, run_sweep
    from strategylab.script.inputs import extract_inputs

    source = _read_script(script)
    ranges = ranges_from_inputs(extract_inputs(source), smart=smart)
    if not ranges:
        raise click.ClickException("Script declares no numeric inputs to sweep.")
    bars, bt_config = _prepare(cfg, source, bars_file, symbol, timeframe, None, None)

    try:
        result = run_sweep(
            bars,
            source,
            ranges,
            bt_config,
            max_combinations=max_combinations or cfg.sweep.max_combinations,
            max_workers=workers or cfg.sweep.max_workers,
            rank_by=rank_by or cfg.sweep.rank_by,
            top_n=top_n or cfg.sweep.top_n,
        )
    except BacktestError as e:
        raise click.ClickException(str(e)) from e

    _print_sweep_results(result)


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--symbol", default="", help="Symbol the ranges are meant for.")
@click.option("--timeframe", default="1d", show_default=True, help="Timeframe the ranges are meant for.")
@click.pass_obj
def suggest(cfg: AppConfig, script: Path, symbol: str, timeframe: str) -> None:
    """Suggest sweep ranges for SCRIPT's parameters."""
    from strategylab.script.suggest import ParameterSuggester

    suggester = ParameterSuggester(cfg.ai)
    suggestions = suggester.suggest(_read_script(script), symbol, timeframe)
    if not suggestions:
        click.echo("No suggestions for this script.")
        return

    source_label = "model" if suggester.enabled else "heuristics"
    click.echo(f"Suggestions ({source_label}):")
    for s in suggestions:
        click.echo(f"  {s.name:<16} {s.min_value:g} .. {s.max_value:g} step {s.step:g}")
        if s.reason:
            click.echo(f"    {s.reason}")


@cli.group()
def results() -> None:
    """Browse stored backtest results."""


@results.command("list")
@click.option("--symbol", default=None, help="Only results for this symbol.")
@click.option("--strategy", "strategy_name", default=None, help="Only results for this strategy name.")
@click.option("--limit", type=int, default=50, show_default=True)
@click.pass_obj
def results_list(
    cfg: AppConfig,
    symbol: str | None,
    strategy_name: str | None,
    limit: int,
) -> None:
    """List stored results, newest first."""
    from strategylab.storage.repository import ResultRepository

    rows = ResultRepository(_session_factory(cfg)).list(
        symbol=symbol, strategy_name=strategy_name, limit=limit
    )
    if not rows:
        click.echo("No stored results.")
        return
    click.echo(f"{'ID':>5}  {'Strategy':<24} {'Symbol':<8} {'Return %':>9} {'Sharpe':>7} {'Trades':>6}  Created")
    for r in rows:
        click.echo(
            f"{r['recordId']:>5}  {r['strategyName'][:24]:<24} {r['symbol']:<8} "
            f"{r['totalReturn']:>9.2f} {r['sharpeRatio']:>7.3f} {r['totalTrades']:>6}  {r['createdAt']}"
        )


@results.command("show")
@click.argument("record_id", type=int)
@click.pass_obj
def results_show(cfg: AppConfig, record_id: int) -> None:
    """Print one stored result as JSON."""
    from strategylab.storage.repository import RecordNotFoundError, ResultRepository

    try:
        doc = ResultRepository(_session_factory(cfg)).get(record_id)
    except RecordNotFoundError as e:
        raise click.ClickException(str(e)) from e
    click.echo(json.dumps(doc, indent=2))


@results.command("delete")
@click.argument("record_id", type=int)
@click.pass_obj
def results_delete(cfg: AppConfig, record_id: int) -> None:
    """Delete one stored result."""
    from strategylab.storage.repository import RecordNotFoundError, ResultRepository

    try:
        ResultRepository(_session_factory(cfg)).delete(record_id)
    except RecordNotFoundError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Deleted result {record_id}.")


@cli.group()
def strategies() -> None:
    """Manage stored strategy scripts."""


@strategies.command("save")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Name to store under (default: the strategy() title).")
@click.option("--description", default=None, help="Free-text description (default: derived from the script).")
@click.pass_obj
def strategies_save(
    cfg: AppConfig,
    script: Path,
    name: str | None,
    description: str | None,
) -> None:
    """Store a script. An existing strategy with the same name is replaced."""
    from strategylab.script.inputs import parse_strategy
    from strategylab.storage.repository import StrategyRepository

    source = _read_script(script)
    parsed = parse_strategy(source)
    strategy_name = name or parsed.name
    strategy_id = StrategyRepository(_session_factory(cfg)).save(
        strategy_name,
        source,
        description=parsed.description if description is None else description,
    )
    click.echo(f"Saved strategy {strategy_name!r} as #{strategy_id}.")


@strategies.command("list")
@click.pass_obj
def strategies_list(cfg: AppConfig) -> None:
    """List stored strategies, most recently updated first."""
    from strategylab.storage.repository import StrategyRepository

    rows = StrategyRepository(_session_factory(cfg)).list()
    if not rows:
        click.echo("No stored strategies.")
        return
    click.echo(f"{'ID':>5}  {'Name':<32} {'Inputs':>6} {'Runs':>5}  Updated")
    for s in rows:
        click.echo(
            f"{s['id']:>5}  {s['name'][:32]:<32} {len(s['inputs']):>6} "
            f"{s['backtestCount']:>5}  {s['updatedAt']}"
        )


@strategies.command("show")
@click.argument("strategy_id", type=int)
@click.option("--source", "source_only", is_flag=True, help="Print only the script source.")
@click.pass_obj
def strategies_show(cfg: AppConfig, strategy_id: int, source_only: bool) -> None:
    """Print one stored strategy as JSON."""
    from strategylab.storage.repository import RecordNotFoundError, StrategyRepository

    try:
        doc = StrategyRepository(_session_factory(cfg)).get(strategy_id)
    except RecordNotFoundError as e:
        raise click.ClickException(str(e)) from e
    if source_only:
        click.echo(doc["source"], nl=False)
    else:
        click.echo(json.dumps(doc, indent=2))


@strategies.command("delete")
@click.argument("strategy_id", type=int)
@click.pass_obj
def strategies_delete(cfg: AppConfig, strategy_id: int) -> None:
    """Delete one stored strategy. Its stored results are kept."""
    from strategylab.storage.repository import RecordNotFoundError, StrategyRepository

    try:
        StrategyRepository(_session_factory(cfg)).delete(strategy_id)
    except RecordNotFoundError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Deleted strategy {strategy_id}.")


@cli.command()
@click.pass_obj
def config(cfg: AppConfig) -> None:
    """Show current configuration."""
    click.echo("=== Strategy Lab Configuration ===\n")

    click.echo(f"Log Level:    {cfg.log_level}")
    click.echo(f"Log Format:   {cfg.log_format}")
    click.echo(f"DB Path:      {cfg.db_path}")
    click.echo("")

    click.echo("[Engine]")
    click.echo(f"  Initial Capital:     {cfg.engine.initial_capital:,.2f}")
    click.echo(f"  Commission %:        {cfg.engine.commission_pct}")
    click.echo(f"  Min Bars:            {cfg.engine.min_bars}")
    click.echo(f"  Min Source Length:   {cfg.engine.min_source_length}")
    click.echo("")

    click.echo("[Sweep]")
    click.echo(f"  Max Combinations:    {cfg.sweep.max_combinations}")
    click.echo(f"  Max Workers:         {cfg.sweep.max_workers}")
    click.echo(f"  Rank By:             {cfg.sweep.rank_by}")
    click.echo(f"  Top N:               {cfg.sweep.top_n}")
    click.echo("")

    click.echo("[AI]")
    click.echo(f"  Enabled:    {bool(cfg.ai.api_key)}")
    click.echo(f"  Base URL:   {cfg.ai.base_url}")
    click.echo(f"  Model:      {cfg.ai.model}")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _read_script(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise click.ClickException(f"Cannot read script {path}: {e}") from e


def _parse_params(pairs: tuple[str, ...]) -> dict[str, float]:
    """NAME=VALUE pairs to a parameter override dict."""
    overrides: dict[str, float] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=VALUE, got {pair!r}", param_hint="--param")
        try:
            overrides[name.strip()] = float(value)
        except ValueError as e:
            raise click.BadParameter(f"{name.strip()} is not a number: {value!r}", param_hint="--param") from e
    return overrides


def _prepare(
    cfg: AppConfig,
    source: str,
    bars_file: Path,
    symbol: str,
    timeframe: str,
    capital: float | None,
    commission: float | None,
) -> tuple[list[Bar], BacktestConfig]:
    """Load and validate bars, and build the run config."""
    from pydantic import ValidationError

    from strategylab.backtest.config import BacktestConfig, BacktestError
    from strategylab.backtest.validation import validate_request
    from strategylab.market.loader import load_bars
    from strategylab.script.inputs import parse_strategy

    try:
        bars = load_bars(bars_file)
        validate_request(
            bars,
            source,
            min_bars=cfg.engine.min_bars,
            min_source_length=cfg.engine.min_source_length,
        )
    except BacktestError as e:
        raise click.ClickException(str(e)) from e

    try:
        bt_config = BacktestConfig(
            strategy_name=parse_strategy(source).name,
            symbol=symbol.upper(),
            timeframe=timeframe,
            start_date=bars[0].timestamp.date().isoformat(),
            end_date=bars[-1].timestamp.date().isoformat(),
            initial_capital=cfg.engine.initial_capital if capital is None else capital,
            commission_pct=cfg.engine.commission_pct if commission is None else commission,
        )
    except ValidationError as e:
        raise click.ClickException(str(e)) from e
    return bars, bt_config


def _session_factory(cfg: AppConfig) -> sessionmaker[Session]:
    from strategylab.storage.repository import create_db_engine, create_session_factory

    return create_session_factory(create_db_engine(cfg.db_path, create_tables=True))


def _save_result(cfg: AppConfig, source: str, result: BacktestResult) -> int:
    from strategylab.storage.repository import ResultRepository, StrategyRepository

    factory = _session_factory(cfg)
    strategy_id = StrategyRepository(factory).save(result.strategy_name, source)
    return ResultRepository(factory).save(result, strategy_id=strategy_id)


def _print_backtest_results(result: BacktestResult) -> None:
    """Format and print backtest results to CLI."""
    m = result.metrics

    click.echo(f"\nBacktest Results: {result.strategy_name}")
    click.echo(f"Period: {result.start_date} to {result.end_date}")
    if result.symbol:
        click.echo(f"Symbol: {result.symbol} ({result.timeframe})")
    click.echo(f"Initial Capital: ${result.initial_capital:,.2f}")
    if result.params:
        click.echo("Params: " + ", ".join(f"{k}={v:g}" for k, v in result.params.items()))

    click.echo("\nPerformance:")
    click.echo(f"  Total Return:      {m.total_return:.2f}%")
    click.echo(f"  Annualized Return: {m.annualized_return:.2f}%")
    click.echo(f"  Final Equity:      ${result.final_equity:,.2f}")
    click.echo(f"  Sharpe Ratio:      {m.sharpe_ratio:.3f}")
    click.echo(f"  Sortino Ratio:     {m.sortino_ratio:.3f}")
    click.echo(f"  Max Drawdown:      -{result.max_drawdown:.2f}% ({result.max_drawdown_duration} bars)")
    click.echo(f"  Profit Factor:     {m.profit_factor:.3f}")

    click.echo("\nTrades:")
    click.echo(f"  Total:             {m.total_trades}")
    if m.total_trades > 0:
        click.echo(f"  Winners:           {m.winning_trades} ({m.win_rate:.2f}%)")
        click.echo(f"  Losers:            {m.losing_trades}")
        click.echo(f"  Avg Win:           {m.avg_win:.2f}%")
        click.echo(f"  Avg Loss:          {m.avg_loss:.2f}%")
        click.echo(f"  Best Trade:        {m.best_trade:.2f}%")
        click.echo(f"  Worst Trade:       {m.worst_trade:.2f}%")
        click.echo(f"  Avg Duration:      {m.avg_trade_duration:.2f} bars")

    click.echo(f"\nResult id: {result.id}")


def _print_sweep_results(result: SweepResult) -> None:
    click.echo(
        f"\nSweep: {result.attempted} of {result.total_combinations} combinations run"
        f"{' (truncated)' if result.truncated else ''}, {result.failed} failed"
    )
    if not result.top:
        click.echo("No successful runs.")
        return

    click.echo(f"Top {len(result.top)} by {result.rank_by}:")
    for entry in result.top:
        params = ", ".join(f"{k}={v:g}" for k, v in entry.params.items())
        r = entry.result.to_dict()
        click.echo(
            f"  #{entry.rank:<3} {result.rank_by}={entry.score:<10g} "
            f"return={r['totalReturn']:.2f}% trades={r['totalTrades']}  {params}"
        )
