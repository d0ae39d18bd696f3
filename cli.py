#!/usr/bin/env python3
"""
Evidence Fusion Engine - Command Line Interface

Evaluates fused trading decisions from OHLCV CSV history without running a
live feed.

Usage:
    python cli.py EURUSD
    python cli.py EURUSD XAUUSD --lag 1
    python cli.py EURUSD --component macd
    python cli.py EURUSD --zones 10
    python cli.py EURUSD --weights mtf=40,volume=30,rsi=30

Data files are read from ``DATA_DATA_DIR`` (default ``data/``) and named
``{instrument}_{timeframe}.csv``, e.g. ``data/EURUSD_H1.csv``.
"""

import argparse
import sys
from typing import Dict, List

# Load environment variables FIRST before any imports that use settings
from dotenv import load_dotenv
load_dotenv()

from rich.console import Console

from evidence_fusion.cli.analyzer import FusionAnalyzer
from evidence_fusion.cli.formatter import OutputFormatter
from evidence_fusion.config.settings import settings
from evidence_fusion.utils.cli_logging import configure_cli_logging


console = Console()
formatter = OutputFormatter()


def parse_arguments():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Evidence Fusion Engine - Signal Evaluation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s EURUSD                            # Evaluate one instrument
  %(prog)s EURUSD XAUUSD                     # Evaluate several instruments
  %(prog)s EURUSD --lag 3                    # Evaluate three bars back
  %(prog)s EURUSD --component rsi            # Single component signal
  %(prog)s EURUSD --zones 5                  # Five nearest active zones
  %(prog)s EURUSD --weights mtf=2,macd=1     # Custom weights (normalized)
  %(prog)s EURUSD --format json              # JSON output

Verbosity Levels:
  %(prog)s EURUSD --verbose=0                # Silent (errors only)
  %(prog)s EURUSD --verbose=1                # Normal (warnings + errors)
  %(prog)s EURUSD --verbose=2                # Detailed (info + warnings + errors)
  %(prog)s EURUSD --verbose=3                # Debug (full verbose output)
        """,
    )

    parser.add_argument(
        "instruments",
        nargs="*",
        help=f"Instruments to evaluate (default: {settings.DEFAULT_INSTRUMENT})",
    )

    parser.add_argument(
        "--lag",
        type=int,
        default=0,
        help="Closed-bar lag to evaluate (default: 0, the latest bar)",
    )

    parser.add_argument(
        "--component",
        "-c",
        type=str,
        help="Show a single component signal (mtf, zone, rsi, macd, volume, pattern)",
    )

    parser.add_argument(
        "--zones",
        "-z",
        type=int,
        metavar="N",
        help="Show the N nearest active zones",
    )

    parser.add_argument(
        "--weights",
        type=str,
        help="Component weights as name=value pairs separated by commas",
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        help=f"Directory with OHLCV CSV files (default: {settings.data.DATA_DIR})",
    )

    parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )

    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Save JSON output to file",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        nargs="?",
        const=2,
        type=int,
        choices=[0, 1, 2, 3],
        default=1,
        help="Verbosity level: 0=errors-only, 1=normal (default), 2=detailed, 3=debug",
    )

    parser.add_argument(
        "--log",
        type=str,
        metavar="FILE",
        help="Save debug logs to file",
    )

    return parser.parse_args()


def parse_weights(text: str) -> Dict[str, float]:
    """
    Parse ``name=value`` pairs.

    Raises:
        ValueError: On a malformed pair.
    """
    weights = {}
    for pair in text.split(","):
        pair = pair.strip()
        if not pair:
            continue
        name, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected name=value, got {pair!r}")
        weights[name.strip()] = float(value)
    return weights


def run(args, instruments: List[str]) -> List[Dict]:
    data_settings = settings.data
    if args.data_dir:
        data_settings = data_settings.model_copy(update={"DATA_DIR": args.data_dir})
    analyzer = FusionAnalyzer(data_settings)

    if args.weights:
        applied = analyzer.registry.configure_weights(parse_weights(args.weights))
        if args.verbose >= 2:
            formatter.print_progress(
                "Weights: " + ", ".join(f"{name.value}={w:.1f}" for name, w in applied.items())
            )

    results = []
    decisions = []
    for instrument in instruments:
        if args.zones is not None:
            zones = analyzer.zones(instrument, args.zones)
            if args.format == "table":
                formatter.format_zones(instrument, zones)
            results.append({"instrument": instrument, "zones": [z.to_dict() for z in zones]})
        elif args.component:
            signal = analyzer.component(instrument, args.component, args.lag)
            if signal.degraded and args.verbose > 0:
                formatter.print_warning(f"{instrument} {signal.component.value} signal is degraded: {signal.detail}")
            if args.format == "table":
                formatter.format_signals([signal])
            results.append({"instrument": instrument, **signal.to_dict()})
        else:
            decision = analyzer.evaluate(instrument, args.lag)
            decisions.append(decision)
            results.append(decision.to_dict())

    if args.format == "table" and decisions:
        formatter.format_decisions(decisions)
    return results


def main():
    """Main CLI entry point."""
    args = parse_arguments()
    configure_cli_logging(verbose=args.verbose, log_file=args.log)

    instruments = [i.upper() for i in args.instruments] or [settings.DEFAULT_INSTRUMENT]

    try:
        results = run(args, instruments)

        if args.format == "json":
            console.print(formatter.format_json(results))

        if args.output:
            with open(args.output, "w") as f:
                f.write(formatter.format_json(results))
            if args.verbose > 0:
                formatter.print_success(f"Results saved to {args.output}")

    except KeyboardInterrupt:
        console.print("\n[yellow]Evaluation interrupted by user[/yellow]")
        sys.exit(0)
    except (FileNotFoundError, ValueError) as e:
        formatter.print_error(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        formatter.print_error(f"Error: {e}")
        if args.verbose >= 3:
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
