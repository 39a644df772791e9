#!/usr/bin/env python3
# run_consensus.py
"""
CLI for the Consensus Decision Engine.

Usage:
    python run_consensus.py --request-file request.json
    python run_consensus.py --request-file request.json --config config.yaml --output decision.json

Request file (JSON):
    {"task": "extract_field", "data": {...}, "context": "crew_documents",
     "criticalityLevel": "high", "timeoutMs": 20000}

Output:
    - Console tables showing decision, scores and providers
    - JSON file with the complete ConsensusResponse
"""
import argparse
import json
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from decision_core.api import build_engine, process_consensus
from decision_core.config import load_config
from decision_core.models import ConsensusRequest

load_dotenv()
console = Console()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run one request through the Consensus Decision Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_consensus.py --request-file request.json
    python run_consensus.py --request-file request.json --output decision.json
        """
    )
    parser.add_argument("--request-file", required=True, help="Path to ConsensusRequest JSON file")
    parser.add_argument("--config", default="config.yaml", help="Config file (default: config.yaml)")
    parser.add_argument("--output", default="consensus_decision.json",
                        help="Output JSON file (default: consensus_decision.json)")

    args = parser.parse_args()

    if not os.path.exists(args.request_file):
        console.print(f"[red]Error: Request file not found: {args.request_file}[/red]")
        sys.exit(1)

    try:
        with open(args.request_file, 'r', encoding='utf-8') as f:
            request = ConsensusRequest.model_validate(json.load(f))
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[red]Error: Invalid request file: {e}[/red]")
        sys.exit(1)

    engine = build_engine(load_config(args.config))

    console.print(f"\n[cyan]Running consensus for task '{request.task}' ({request.criticality_level.value})...[/cyan]")
    try:
        # Clients are bound to the loop process_consensus runs, so close them there
        response = process_consensus(request, engine=engine, close_engine=True)
    except Exception as e:
        console.print(f"[red]Error during consensus processing: {e}[/red]")
        sys.exit(1)
    finally:
        for job in engine.list_active_jobs():
            console.print(f"[dim]Job {job.job_id}: {job.status.value}[/dim]")

    console.print("\n[green]✓ Consensus Complete[/green]")

    table = Table(title="Decision", show_lines=True)
    table.add_column("Field", style="cyan", width=18)
    table.add_column("Value", style="white", max_width=70)
    table.add_row("Decision", json.dumps(response.decision, default=str))
    table.add_row("Confidence", f"{response.confidence:.3f}")
    table.add_row("Agreement", f"{response.agreement:.3f}")
    table.add_row("Rule", response.metadata.rule_name)
    table.add_row("Providers", ", ".join(response.providers))
    if response.requires_approval:
        approval = f"[red]REQUIRED[/red] ({', '.join(response.metadata.approval_reasons)})"
    else:
        approval = "[green]not required[/green]"
    table.add_row("Human approval", approval)
    table.add_row("Time", f"{response.metadata.processing_time_ms} ms")
    console.print(table)

    console.print(f"\n[bold]Explanation:[/bold] {response.explanation}")

    with open(args.output, 'w', encoding='utf-8') as f:
        json.dump(response.model_dump(mode="json"), f, indent=2)
    console.print(f"\n[green]✓ Decision saved to {args.output}[/green]")


if __name__ == "__main__":
    main()
