"""
Command line interface for inspecting oSnap proposals.

Usage:
    osnap status --network 1 --module 0x... --explanation "..." \
        [--transactions batch.json] [--account 0x...] [--rpc-url URL] [--json]
"""
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import typer

from .chain import ChainReader
from .config import NetworkConfig
from .exceptions import OsnapError
from .models import ProposalStatus, WalletContext
from .reconciliation import ReconciliationEngine
from .state import ProposalState, allowed_actions, derive_state
from .version import __version__

logger = logging.getLogger(__name__)

app = typer.Typer(help="Inspect optimistic governor proposals", no_args_is_help=True)

STATE_COLORS = {
    ProposalState.APPROVED.value: typer.colors.GREEN,
    ProposalState.EXECUTED.value: typer.colors.GREEN,
    ProposalState.PROPOSED.value: typer.colors.YELLOW,
    ProposalState.AWAITING_PROPOSAL.value: typer.colors.YELLOW,
    ProposalState.REJECTED.value: typer.colors.RED,
    ProposalState.ERROR.value: typer.colors.RED,
}


def should_use_color(no_color: bool = False) -> bool:
    """Color only interactive output, honoring NO_COLOR"""
    if no_color or os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def load_transactions(path: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """
    Load a transaction batch from a JSON file

    The file holds a list of objects with ``to``, ``operation``, ``value``
    and ``data`` keys.
    """
    if path is None:
        return None
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of transactions")
    return data


def render_status(status: ProposalStatus, wallet: WalletContext) -> Dict[str, Any]:
    state = derive_state(status, wallet.connected, loading=False)
    actions = sorted(action.value for action in allowed_actions(state, status))
    return {
        "state": state.value,
        "actions": actions,
        "status": status.model_dump(mode="json"),
    }


def format_text(result: Dict[str, Any], color: bool = False) -> List[str]:
    status = result["status"]
    bond = status["bond"]
    state = result["state"]
    if color and state in STATE_COLORS:
        state = typer.style(state, fg=STATE_COLORS[state], bold=True)

    lines = [
        f"State:           {state}",
        f"Actions:         {', '.join(result['actions']) or '-'}",
        f"Avatar:          {status['governing_account']}",
        f"Oracle:          {status['oracle_address']}",
        f"Bond:            {status['minimum_bond']} ({bond['symbol']}, {bond['decimals']} decimals)",
        f"Allowance:       {bond['allowance']}",
        f"Dispute window:  {status['dispute_window_seconds']}s",
    ]
    if status["proposal_hash"]:
        lines.append(f"Proposal hash:   {status['proposal_hash']}")
    event = status["proposal_event"]
    if event:
        lines += [
            f"Proposal time:   {event['proposal_time']}",
            f"Expires:         {event['expiration_timestamp']}",
            f"Disputed:        {event['is_disputed']}",
            f"Settled:         {event['is_settled']}",
        ]
    lines.append(f"Executed:        {status['executed']}")
    return lines


async def fetch_status(
    network: str,
    module: str,
    explanation: str,
    transactions: Optional[str] = None,
    account: Optional[str] = None,
    rpc_url: Optional[str] = None,
    from_block: Optional[int] = None
) -> Dict[str, Any]:
    """Reconcile one proposal against the network's RPC endpoint"""
    url = NetworkConfig.get_rpc_url(network, override=rpc_url)
    batch = load_transactions(transactions)
    wallet = WalletContext(account=account)
    async with ChainReader.from_url(url) as chain:
        engine = ReconciliationEngine(chain, from_block=from_block)
        status = await engine.get_proposal_status(network, module, explanation, batch, wallet)
    return render_status(status, wallet)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"osnap {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def status(
    network: str = typer.Option(..., "--network", help="Network id (chain id, e.g. 1)"),
    module: str = typer.Option(..., "--module", help="Optimistic governor module address"),
    explanation: str = typer.Option("", "--explanation", help="Proposal explanation text"),
    transactions: Optional[str] = typer.Option(None, "--transactions", help="JSON file with the proposed transaction batch"),
    account: Optional[str] = typer.Option(None, "--account", help="Account whose bond allowance and balance to read"),
    rpc_url: Optional[str] = typer.Option(None, "--rpc-url", help="RPC endpoint (overrides network config)"),
    from_block: Optional[int] = typer.Option(None, "--from-block", help="First block to search for events"),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
) -> None:
    """Reconcile and print a proposal's status"""
    try:
        result = asyncio.run(fetch_status(
            network, module, explanation,
            transactions=transactions, account=account, rpc_url=rpc_url, from_block=from_block,
        ))
    except (OsnapError, ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(result, indent=2))
        return
    for line in format_text(result, color=should_use_color(no_color)):
        typer.echo(line)


if __name__ == "__main__":
    app()
