"""
Command-line interface for hybrid feeding-model simulations.

Provides commands for single solves, period estimation, phase-response
curves, grasper-geometry sweeps, and inspecting saved runs.
"""

from contextlib import nullcontext
from pathlib import Path
from typing import Optional
import logging
import warnings

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

app = typer.Typer(
    name="feedcube",
    help="Hybrid feeding-model simulator: switched ODE with saltation-corrected variational dynamics.",
    add_completion=False
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config: Optional[Path], out_dir: Optional[Path]):
    from .config import Config, load_config
    from .errors import ConfigError

    try:
        cfg = load_config(config) if config is not None else Config()
    except ConfigError as exc:
        _fail(exc)
    if out_dir is not None:
        cfg.run.out_dir = str(out_dir)
    return cfg


def _fail(exc: Exception) -> None:
    console.print(f"[bold red]Error:[/] {exc}")
    raise typer.Exit(code=1)


CONFIG_OPTION = typer.Option(
    None,
    "--config", "-c",
    help="Path to YAML configuration file. Defaults are used if omitted.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True
)
OUT_DIR_OPTION = typer.Option(
    None,
    "--out-dir", "-o",
    help="Override output directory from config."
)
QUIET_OPTION = typer.Option(
    False,
    "--quiet", "-q",
    help="Suppress progress output."
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log every integration segment and transition."
    )
):
    """Hybrid feeding-model simulator."""
    _setup_logging(verbose)


@app.command()
def solve(
    config: Optional[Path] = CONFIG_OPTION,
    out_dir: Optional[Path] = OUT_DIR_OPTION,
    horizon: Optional[float] = typer.Option(
        None,
        "--horizon", "-T",
        help="Override the integration horizon."
    ),
    lyapunov: bool = typer.Option(
        False,
        "--lyapunov",
        help="Track the running Lyapunov exponent (needs a non-zero vinit)."
    ),
    quiet: bool = QUIET_OPTION
):
    """
    Solve the model once and save the trajectory.
    """
    from .errors import FeedcubeError
    from .io import create_run_folder, save_solution
    from .model import HybridModel

    cfg = _load(config, out_dir)
    if horizon is not None:
        cfg.initial.horizon = horizon
    if lyapunov:
        cfg.initial.lyapunov = True

    try:
        model = HybridModel.from_config(cfg)
        with console.status("Solving...", spinner="dots") if not quiet else nullcontext():
            model.solve()
    except FeedcubeError as exc:
        _fail(exc)

    run_path = create_run_folder(cfg)
    save_solution(model, cfg, run_path)

    if not quiet:
        summary = model.transitions.summary()
        console.print(f"[bold]Horizon:[/] {model.horizon:.6g}  [bold]Samples:[/] {model.t.size}")
        console.print(
            f"[bold]Transitions:[/] {summary['entries']} entries, {summary['exits']} exits, "
            f"{summary['grasper_closes']} closes, {summary['grasper_opens']} opens"
        )
        if model.lyapunov_trace is not None:
            console.print(f"[bold]Lyapunov estimate:[/] {model.lyapunov_trace.final:.6g}")

    console.print(f"\n[bold green]Run complete:[/] {run_path}")


@app.command()
def period(
    config: Optional[Path] = CONFIG_OPTION,
    out_dir: Optional[Path] = OUT_DIR_OPTION,
    lower: Optional[float] = typer.Option(None, "--lower", help="Lower bracket for the period."),
    upper: Optional[float] = typer.Option(None, "--upper", help="Upper bracket for the period."),
    max_iter: Optional[int] = typer.Option(None, "--max-iter", help="Maximum bisection steps."),
    quiet: bool = QUIET_OPTION
):
    """
    Estimate the limit-cycle period by bisection.
    """
    from .errors import ConvergenceWarning, FeedcubeError
    from .io import create_run_folder, save_solution
    from .model import HybridModel

    cfg = _load(config, out_dir)
    if lower is not None:
        cfg.period.lower = lower
    if upper is not None:
        cfg.period.upper = upper
    if max_iter is not None:
        cfg.period.max_iter = max_iter

    try:
        model = HybridModel.from_config(cfg)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            T = model.estimate_period(
                cfg.period.lower, cfg.period.upper,
                max_iter=cfg.period.max_iter, target=cfg.period.target,
            )
    except FeedcubeError as exc:
        _fail(exc)

    for w in caught:
        console.print(f"[yellow]Warning:[/] {w.message}")

    cfg.initial.horizon = T
    run_path = create_run_folder(cfg)
    save_solution(model, cfg, run_path, period=T)

    if not quiet:
        console.print(f"[bold]Period:[/] {T:.9f}")
    console.print(f"\n[bold green]Run complete:[/] {run_path}")


@app.command()
def prc(
    config: Optional[Path] = CONFIG_OPTION,
    out_dir: Optional[Path] = OUT_DIR_OPTION,
    z0: Optional[str] = typer.Option(
        None,
        "--z0",
        help="Comma-separated adjoint value at the final time (6 entries)."
    ),
    quiet: bool = QUIET_OPTION
):
    """
    Solve the model and compute its phase-response curve.
    """
    from .errors import FeedcubeError
    from .io import create_run_folder, save_solution
    from .model import HybridModel

    cfg = _load(config, out_dir)
    z_final = None
    if z0 is not None:
        try:
            z_final = [float(v) for v in z0.split(",")]
        except ValueError:
            _fail(ValueError(f"--z0 must be comma-separated numbers, got {z0!r}"))

    try:
        model = HybridModel.from_config(cfg)
        model.solve()
        response = model.phase_response(z_final)
    except FeedcubeError as exc:
        _fail(exc)

    run_path = create_run_folder(cfg)
    save_solution(model, cfg, run_path, phase_response=response)

    if not quiet:
        console.print(
            f"[bold]Adjoint:[/] {response.t.size} samples over "
            f"{len(model.transitions.exits)} exits"
        )
    console.print(f"\n[bold green]Run complete:[/] {run_path}")


@app.command()
def sweep(
    config: Path = typer.Option(
        ...,
        "--config", "-c",
        help="Path to YAML configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True
    ),
    out_dir: Optional[Path] = OUT_DIR_OPTION,
    quiet: bool = QUIET_OPTION
):
    """
    Run a grasper-geometry sweep from a configuration file.

    Produces the net inward load rate over threshold angle and offset.
    """
    from .sweep import run_sweep, get_sweep_summary
    from .io import create_run_folder, save_results

    if not quiet:
        console.print(f"[bold blue]Loading config:[/] {config}")

    cfg = _load(config, out_dir)

    total_points = cfg.sweep.n_angle * cfg.sweep.n_thresh

    if not quiet:
        console.print(f"[bold]Sweep:[/] {cfg.sweep.n_angle} angles x {cfg.sweep.n_thresh} thresholds = {total_points} points")
        console.print(f"[bold]Simulation:[/] T={cfg.sweep.horizon}, force={cfg.sweep.force}")

    if not quiet:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        ) as progress:
            task = progress.add_task("Running sweep...", total=total_points)

            def update_progress(current, total):
                progress.update(task, completed=current)

            result = run_sweep(cfg, progress_callback=update_progress)
    else:
        result = run_sweep(cfg)

    run_path = create_run_folder(cfg, result.timestamp)
    save_results(result, run_path)

    if not quiet:
        console.print(f"[bold green]Results saved to:[/] {run_path}")

        summary = get_sweep_summary(result)
        console.print()
        console.print("[bold]Summary:[/]")
        console.print(f"  Feeding points: {summary['feeding_points']}/{summary['total_points']}")
        console.print(f"  Failed points: {summary['failed_points']}")
        console.print(f"  Max intake rate: {summary['intake_rate_max']:.4g}")
        console.print(f"  Elapsed time: {summary['elapsed_seconds']:.2f}s ({summary['points_per_second']:.2f} points/s)")

    console.print(f"\n[bold green]Run complete:[/] {run_path}")


@app.command()
def info(
    run: Path = typer.Option(
        ...,
        "--run", "-r",
        help="Path to run folder.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True
    )
):
    """
    Display information about a run.
    """
    from .io import load_results, load_solution
    from .sweep import get_sweep_summary

    table = Table(title=f"Run: {run.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    if (run / "results.json").exists():
        result = load_results(run)
        summary = get_sweep_summary(result)

        table.add_row("Kind", "sweep")
        table.add_row("Config Hash", result.config_hash)
        table.add_row("Timestamp", result.timestamp)
        table.add_row("Grid Size", f"{len(result.angles)} x {len(result.thresholds)}")
        table.add_row("Total Points", str(summary['total_points']))
        table.add_row("Feeding Points", str(summary['feeding_points']))
        table.add_row("Failed Points", str(summary['failed_points']))
        table.add_row("Max Intake Rate", f"{summary['intake_rate_max']:.4g}")
        table.add_row("Elapsed Time", f"{summary['elapsed_seconds']:.2f}s")
    elif (run / "solution.json").exists():
        record = load_solution(run)
        meta = record.metadata["metadata"]
        counts = record.metadata["transitions"]["summary"]

        table.add_row("Kind", "solve")
        table.add_row("Config Hash", meta["config_hash"])
        table.add_row("Timestamp", meta["timestamp"])
        table.add_row("Horizon", f"{meta['horizon']:.6g}")
        table.add_row("Samples", str(meta["n_samples"]))
        if meta.get("period") is not None:
            table.add_row("Period", f"{meta['period']:.9f}")
        for key, value in counts.items():
            table.add_row(key.replace("_", " ").title(), str(value))
        lyap = record.metadata.get("lyapunov")
        if lyap is not None and lyap.get("final") is not None:
            table.add_row("Lyapunov Estimate", f"{lyap['final']:.6g}")
        if record.phase_response is not None:
            table.add_row("PRC Samples", str(len(record.phase_response)))
    else:
        _fail(FileNotFoundError(f"No results found in {run}"))

    console.print(table)


@app.command()
def list_runs(
    out_dir: Path = typer.Option(
        Path("out"),
        "--out-dir", "-o",
        help="Output directory to search."
    )
):
    """
    List all runs in an output directory.
    """
    from .io import list_runs as _list_runs

    runs = _list_runs(out_dir)

    if not runs:
        console.print(f"[yellow]No runs found in {out_dir}[/]")
        return

    table = Table(title=f"Runs in {out_dir}")
    table.add_column("#", style="dim")
    table.add_column("Run Name", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Timestamp", style="green")
    table.add_column("Hash", style="yellow")

    for i, run_path in enumerate(runs, 1):
        # Parse run name: run_YYYYmmdd_HHMMSS_hash
        parts = run_path.name.split("_")
        if len(parts) >= 4:
            timestamp = f"{parts[1]}_{parts[2]}"
            hash_val = parts[3]
        else:
            timestamp = ""
            hash_val = ""
        kind = "sweep" if (run_path / "results.json").exists() else "solve"
        table.add_row(str(i), run_path.name, kind, timestamp, hash_val)

    console.print(table)


@app.command()
def version():
    """
    Display version information.
    """
    from . import __version__
    console.print(f"feedcube version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
