#!/usr/bin/env python3
"""
Sector Rotation Backtest - Demo Runner

This script demonstrates the complete sector rotation pipeline:
    Phase 1: Sector data preparation (quarter bucketing, history truncation)
    Phase 2: Hierarchical clustering of sectors into portfolios
    Phase 3: Rotation backtest, performance metrics and factor attribution

INPUT
    By default a seeded synthetic sector universe is generated, so the
    demo runs without any data files. Real data can be supplied as CSVs:

    --sectors     date,<sector>,<sector>,...      (daily or monthly returns)
    --portfolios  period,1,2,...,N                (period returns, skips clustering)
    --benchmark   date|period,market,risk_free
    --factors     date|period,SMB,HML

EXECUTION
    python run_demo.py
    python run_demo.py --clusters 6 --training-quarters 8
    python run_demo.py --portfolios p.csv --benchmark b.csv --concentration 4

OUTPUT ARTIFACTS
    outputs/
        rotation_report.json        Metrics, decisions, cumulative series, factor models
        rotation_periods.csv        Per-period decisions and strategy returns
        rotation_regressions.csv    Stacked regression summary table
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd

from sector_rotation.config import CONSTRUCTION, MARKET_COLUMN, RISK_FREE_COLUMN, SIZE_FACTOR, VALUE_FACTOR
from sector_rotation.construction import compound_to_periods, construct_portfolios
from sector_rotation.exceptions import RotationError
from sector_rotation.period_table import PeriodReturnTable
from sector_rotation.pipeline import VERSION, RotationPipeline, format_rotation_report, report_to_dict


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SEED: int = 7
DEFAULT_START: str = "2000-01-01"
DEFAULT_YEARS: int = 20

OUTPUT_DIR = Path("outputs")

SYNTHETIC_SECTORS: List[str] = [
    "Software", "Semiconductors", "Hardware",
    "Banks", "Insurance", "Diversified Financials",
    "Pharma", "Biotech", "Healthcare Equipment",
    "Utilities", "Telecom",
    "Precious Metals",
]


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


def print_subsection(title: str) -> None:
    """Print a subsection divider."""
    print()
    print(f"  {'─' * 75}")
    print(f"  {title}")
    print(f"  {'─' * 75}")


# =============================================================================
# INPUT
# =============================================================================

def synthetic_universe(
    seed: int = DEFAULT_SEED,
    start: str = DEFAULT_START,
    years: int = DEFAULT_YEARS
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Generate monthly sector returns, benchmark and size/value factors.

    Sectors load on one of four industry-group factors plus the market;
    the last sector (a commodity) is mostly idiosyncratic so clustering
    tends to isolate it as a single-sector portfolio.
    """
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start=start, periods=years * 12, freq="MS")
    n = len(dates)

    market = rng.normal(0.006, 0.04, n)
    groups = rng.normal(0.0, 0.03, (n, 4))
    group_of = [0, 0, 0, 1, 1, 1, 2, 2, 2, 3, 3]

    data = {}
    for i, sector in enumerate(SYNTHETIC_SECTORS[:-1]):
        beta = 0.8 + 0.1 * (i % 4)
        data[sector] = beta * market + groups[:, group_of[i]] + rng.normal(0.0005, 0.015, n)
    data[SYNTHETIC_SECTORS[-1]] = 0.1 * market + rng.normal(0.004, 0.07, n)

    sectors = pd.DataFrame(data, index=dates)
    benchmark = pd.DataFrame(
        {MARKET_COLUMN: market, RISK_FREE_COLUMN: np.full(n, 0.002)},
        index=dates
    )
    factors = pd.DataFrame(
        {SIZE_FACTOR: rng.normal(0.001, 0.02, n), VALUE_FACTOR: rng.normal(0.001, 0.02, n)},
        index=dates
    )
    return sectors, benchmark, factors


def read_frame(path: Path) -> pd.DataFrame:
    """Read a CSV whose first column is a date or period label."""
    frame = pd.read_csv(path, index_col=0)
    labels = frame.index.astype(str)
    if labels.str.fullmatch(r"\d{4}Q[1-4]").all():
        frame.index = pd.PeriodIndex(labels, freq=CONSTRUCTION.period_frequency)
    else:
        frame.index = pd.to_datetime(labels)
    return frame


def to_periods(frame: pd.DataFrame) -> pd.DataFrame:
    """Compound date-indexed returns into periods; period-indexed frames pass through."""
    if isinstance(frame.index, pd.DatetimeIndex):
        return compound_to_periods(frame)
    return frame


def benchmark_to_periods(frame: pd.DataFrame) -> pd.DataFrame:
    """Compound market returns and risk-free rates into period returns."""
    if not isinstance(frame.index, pd.DatetimeIndex):
        return frame
    market = compound_to_periods(frame[MARKET_COLUMN])
    risk_free = compound_to_periods(frame[RISK_FREE_COLUMN])
    return pd.DataFrame({MARKET_COLUMN: market, RISK_FREE_COLUMN: risk_free})


# =============================================================================
# PHASES
# =============================================================================

def run_phase1(args: argparse.Namespace, logger: logging.Logger) -> Optional[dict]:
    """
    Execute Phase 1: load or generate data and bucket it into quarters.

    Returns
    -------
    dict or None
        'sectors' (or 'portfolios'), 'benchmark' and 'factors' period frames
    """
    print_section_header("PHASE 1: SECTOR DATA PREPARATION")

    try:
        if args.portfolios:
            if not args.benchmark:
                logger.error("--portfolios requires --benchmark")
                return None
            portfolios = to_periods(read_frame(Path(args.portfolios)))
            benchmark = benchmark_to_periods(read_frame(Path(args.benchmark)))
            factors = to_periods(read_frame(Path(args.factors))) if args.factors else None
            logger.info(f"Loaded {portfolios.shape[1]} portfolios over {len(portfolios)} periods")
            return {'portfolios': portfolios, 'benchmark': benchmark, 'factors': factors}

        if args.sectors:
            if not args.benchmark:
                logger.error("--sectors requires --benchmark")
                return None
            sectors = read_frame(Path(args.sectors))
            benchmark = read_frame(Path(args.benchmark))
            factors = read_frame(Path(args.factors)) if args.factors else None
        else:
            logger.info(f"Generating synthetic sector universe (seed={args.seed})")
            sectors, benchmark, factors = synthetic_universe(seed=args.seed)

        sector_periods = to_periods(sectors)
        benchmark_periods = benchmark_to_periods(benchmark)
        factor_periods = to_periods(factors) if factors is not None else None

        logger.info(
            f"{sector_periods.shape[1]} sectors, {len(sector_periods)} periods "
            f"({sector_periods.index[0]} to {sector_periods.index[-1]})"
        )
        return {'sectors': sector_periods, 'benchmark': benchmark_periods, 'factors': factor_periods}

    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Phase 1 execution failed: {e}")
        return None


def run_phase2(
    phase1_output: dict,
    args: argparse.Namespace,
    logger: logging.Logger
) -> Optional[Tuple[PeriodReturnTable, frozenset]]:
    """
    Execute Phase 2: cluster sectors and build the period return table.

    Returns
    -------
    (PeriodReturnTable, concentration set) or None
    """
    print_section_header("PHASE 2: PORTFOLIO CONSTRUCTION")

    try:
        benchmark = phase1_output['benchmark']

        if 'portfolios' in phase1_output:
            portfolios = phase1_output['portfolios']
            table = PeriodReturnTable.from_frames(portfolios, benchmark.reindex(portfolios.index))
            concentration = frozenset(args.concentration or ())
            logger.info(f"Using supplied portfolios, concentration set {sorted(concentration)}")
            return table, concentration

        construction = construct_portfolios(
            phase1_output['sectors'],
            n_clusters=args.clusters,
            training_periods=args.training_quarters
        )

        print_subsection("Cluster Portfolios")
        for pid, members in construction.members.items():
            flag = "  [concentration]" if pid in construction.concentration else ""
            print(f"    P{pid}: {', '.join(members)}{flag}")

        concentration = construction.concentration
        if args.concentration:
            concentration = frozenset(args.concentration)
            logger.info(f"Concentration set overridden to {sorted(concentration)}")

        return construction.to_table(benchmark), concentration

    except RotationError as e:
        logger.error(f"Phase 2 execution failed: {e}")
        return None


def run_phase3(
    table: PeriodReturnTable,
    concentration: frozenset,
    factors: Optional[pd.DataFrame],
    logger: logging.Logger
) -> Optional[Any]:
    """
    Execute Phase 3: rotation backtest, metrics and attribution.

    Returns
    -------
    RotationReport or None
    """
    print_section_header("PHASE 3: ROTATION BACKTEST")

    try:
        pipeline = RotationPipeline(concentration_portfolios=concentration)
        report = pipeline.run(table, factors=factors, name="Momentum Sector Rotation")

        print("\n" + format_rotation_report(report))

        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

        report_path = OUTPUT_DIR / "rotation_report.json"
        with open(report_path, 'w') as f:
            json.dump(report_to_dict(report), f, indent=2, default=str)
        logger.info(f"Saved: {report_path}")

        periods_path = OUTPUT_DIR / "rotation_periods.csv"
        periods = report.rotation.to_frame()
        periods['cumulative_strategy'] = report.cumulative_strategy
        periods['cumulative_benchmark'] = report.cumulative_benchmark
        periods.to_csv(periods_path)
        logger.info(f"Saved: {periods_path}")

        regressions_path = OUTPUT_DIR / "rotation_regressions.csv"
        report.regression_summary.to_csv(regressions_path)
        logger.info(f"Saved: {regressions_path}")

        return report

    except RotationError as e:
        logger.error(f"Phase 3 execution failed: {e}")
        return None


# =============================================================================
# MAIN
# =============================================================================

def main() -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Sector Rotation Backtest - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                                   # Synthetic universe
  python run_demo.py --clusters 5 --training-quarters 12
  python run_demo.py --sectors s.csv --benchmark b.csv --factors f.csv
  python run_demo.py --portfolios p.csv --benchmark b.csv --concentration 4
        """
    )

    parser.add_argument("--sectors", type=str, help="CSV of sector returns (date index)")
    parser.add_argument("--portfolios", type=str, help="CSV of portfolio period returns (skips clustering)")
    parser.add_argument("--benchmark", type=str, help="CSV with market and risk_free columns")
    parser.add_argument("--factors", type=str, help="CSV with SMB and HML columns")
    parser.add_argument(
        "--clusters", "-k",
        type=int,
        default=CONSTRUCTION.n_clusters,
        help=f"Number of cluster portfolios (default: {CONSTRUCTION.n_clusters})"
    )
    parser.add_argument(
        "--training-quarters",
        type=int,
        default=None,
        help="Cluster on the first N quarters and backtest on the rest"
    )
    parser.add_argument(
        "--concentration",
        type=int,
        nargs="*",
        help="Override the concentration portfolio ids"
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Synthetic data seed")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Version:           {VERSION}")

    phase1_output = run_phase1(args, logger)
    if phase1_output is None:
        logger.error("Phase 1 failed - cannot proceed")
        return 1

    phase2_output = run_phase2(phase1_output, args, logger)
    if phase2_output is None:
        logger.error("Phase 2 failed - cannot proceed")
        return 1

    table, concentration = phase2_output
    report = run_phase3(table, concentration, phase1_output.get('factors'), logger)
    if report is None:
        logger.error("Phase 3 failed")
        return 1

    print_section_header("EXECUTION COMPLETE")
    print(f"    Total time: {time.time() - start_time:.2f}s")
    print(f"    Reports written to: {OUTPUT_DIR.resolve()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
