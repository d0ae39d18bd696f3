"""
Output formatting for different display modes.
"""
import json
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from evidence_fusion.signal_generation.core import ComponentSignal, FusionDecision, Zone

console = Console()


class OutputFormatter:
    """Format fusion results for display."""

    @staticmethod
    def _color_code_bias(bias: str) -> str:
        """Apply color coding to a direction label."""
        label = bias.upper()
        if label in ("BULLISH", "BUY", "SUPPORT"):
            return f"[green]{label}[/green]"
        elif label in ("BEARISH", "SELL", "RESISTANCE"):
            return f"[red]{label}[/red]"
        elif label in ("NEUTRAL", "HOLD"):
            return f"[yellow]{label}[/yellow]"
        elif label == "ERROR":
            return "[red]ERROR[/red]"
        else:
            return f"[dim]{label}[/dim]"

    @staticmethod
    def _decision_label(decision: FusionDecision) -> str:
        return {1: "BUY", -1: "SELL"}.get(decision.trade_decision, "HOLD")

    @staticmethod
    def format_decisions(decisions: List[FusionDecision]) -> None:
        """
        Format decisions as a rich table; a single decision gets a detailed panel.

        Args:
            decisions: Decisions to display
        """
        if not decisions:
            console.print("[yellow]No results to display[/yellow]")
            return

        if len(decisions) == 1:
            OutputFormatter.format_decision_detailed(decisions[0])
            return

        table = Table(title="Fusion Decisions", show_header=True, header_style="bold magenta")
        table.add_column("Instrument", style="cyan", no_wrap=True)
        table.add_column("Decision", no_wrap=True)
        table.add_column("Direction", no_wrap=True)
        table.add_column("Confidence", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Summary", style="dim")

        for decision in decisions:
            message = decision.validation_message
            table.add_row(
                decision.instrument,
                OutputFormatter._color_code_bias(OutputFormatter._decision_label(decision)),
                OutputFormatter._color_code_bias(decision.dominant_direction.value),
                f"{decision.overall_confidence:.1f}",
                f"x{decision.position_size_multiplier:.2f}",
                message[:50] + "..." if len(message) > 50 else message,
            )

        console.print(table)

    @staticmethod
    def format_decision_detailed(decision: FusionDecision) -> None:
        """Format a single decision with its component breakdown."""
        label = OutputFormatter._decision_label(decision)
        if label == "BUY":
            border_style = "green"
        elif label == "SELL":
            border_style = "red"
        else:
            border_style = "yellow"

        content = (
            f"[bold]Decision:[/bold] {OutputFormatter._color_code_bias(label)}    "
            f"[bold]Confidence:[/bold] {decision.overall_confidence:.1f}    "
            f"[bold]Score:[/bold] {decision.weighted_score:.1f}\n"
            f"[bold]Shares:[/bold] bullish {decision.bullish_share:.1f} / "
            f"bearish {decision.bearish_share:.1f} / neutral {decision.neutral_share:.1f}"
            f"{'  [red]CONFLICT[/red]' if decision.conflict else ''}\n"
            f"[bold]Position size:[/bold] x{decision.position_size_multiplier:.2f}\n\n"
            f"{decision.validation_message}"
        )
        console.print(
            Panel(
                content,
                title=f"[*] {decision.instrument} Fusion Decision",
                subtitle=f"Updated: {decision.timestamp.isoformat()[:19]}",
                border_style=border_style,
            )
        )
        OutputFormatter.format_signals(list(decision.signals), weights={
            name.value: weight for name, weight in decision.weights.items()
        })

    @staticmethod
    def format_signals(signals: List[ComponentSignal], weights: Dict[str, float] = None) -> None:
        """Format component signals as a table."""
        table = Table(title="Components", show_header=True, header_style="bold magenta")
        table.add_column("Component", style="cyan", no_wrap=True)
        table.add_column("Bias", no_wrap=True)
        table.add_column("Score", justify="right")
        table.add_column("Confidence", justify="right")
        if weights is not None:
            table.add_column("Weight", justify="right")
        table.add_column("Detail", overflow="fold", style="dim", max_width=70)

        for signal in signals:
            row = [
                signal.component.value + (" [dim](degraded)[/dim]" if signal.degraded else ""),
                OutputFormatter._color_code_bias(signal.bias.value),
                f"{signal.score:.1f}",
                f"{signal.confidence:.1f}",
            ]
            if weights is not None:
                row.append(f"{weights.get(signal.component.value, 0.0):.1f}")
            row.append(signal.detail)
            table.add_row(*row)

        console.print(table)

    @staticmethod
    def format_zones(instrument: str, zones: List[Zone]) -> None:
        """Format active zones as a table."""
        if not zones:
            console.print(f"[yellow]No active zones for {instrument}[/yellow]")
            return

        table = Table(title=f"{instrument} Zones", show_header=True, header_style="bold magenta")
        table.add_column("ID", justify="right")
        table.add_column("Type", no_wrap=True)
        table.add_column("Price", justify="right")
        table.add_column("Strength", justify="right")
        table.add_column("Relevance", justify="right")
        table.add_column("Touches", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Source", style="dim")

        for zone in zones:
            table.add_row(
                str(zone.zone_id),
                OutputFormatter._color_code_bias(zone.zone_type.value),
                f"{zone.price:.5f}",
                f"{zone.strength:.2f}",
                f"{zone.relevance:.2f}",
                str(zone.touch_count),
                str(zone.failed_tests),
                zone.source_timeframe.name,
            )

        console.print(table)

    @staticmethod
    def format_json(results: List[Dict[str, Any]]) -> str:
        """
        Format results as JSON.

        Args:
            results: List of result dictionaries

        Returns:
            JSON string
        """
        if len(results) == 1:
            return json.dumps(results[0], indent=2, default=str)
        return json.dumps(results, indent=2, default=str)

    @staticmethod
    def print_progress(message: str, emoji: str = "[*]") -> None:
        """Print a progress message."""
        console.print(f"{emoji} {message}", style="dim")

    @staticmethod
    def print_success(message: str) -> None:
        """Print a success message."""
        console.print(f"[OK] {message}", style="green")

    @staticmethod
    def print_error(message: str) -> None:
        """Print an error message."""
        console.print(f"[ERROR] {message}", style="red bold")

    @staticmethod
    def print_warning(message: str) -> None:
        """Print a warning message."""
        console.print(f"[WARN] {message}", style="yellow")
