"""CLI for FinUnify using Typer."""

import logging
import mimetypes
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import FinUnifyError
from .models import SplitParticipant, SplitType, Transaction
from .service import LedgerService
from .splits import owner_remainder
from .ui import (
    confirm,
    resolve_duplicate_interactive,
    review_transaction_interactive,
    select_category_interactive,
)

app = typer.Typer(
    name="finunify",
    help="Import statements, split bills and track who owes you what",
)
rules_app = typer.Typer(help="Automation rules")
tags_app = typer.Typer(help="Tag maintenance")
app.add_typer(rules_app, name="rules")
app.add_typer(tags_app, name="tags")

console = Console()

OWNER_NAME = "Me"


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    for noisy in ("httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@contextmanager
def open_service(verbose: bool = False) -> Iterator[LedgerService]:
    """Yield a ledger service, reporting errors the way every command does."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield LedgerService(settings, db)
    except (typer.Exit, typer.Abort, typer.BadParameter):
        raise
    except FinUnifyError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(amount: Decimal | float, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def display_transactions(transactions: list[Transaction], title: str = "Transactions"):
    """Display transactions in a table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Description", style="cyan", max_width=40)
    table.add_column("Category", style="yellow")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Split", justify="right")

    for tx in transactions:
        signed = -tx.amount if tx.is_expense else tx.amount
        status = tx.status if tx.status == "verified" else f"⚠️  {tx.status}"
        split = ""
        if tx.split_details:
            split = format_money(tx.split_details.total_lent, use_color=False).strip()
        table.add_row(
            tx.id,
            str(tx.date),
            tx.enhanced_description,
            tx.category,
            format_money(signed),
            status,
            split,
        )

    console.print(table)


def _guess_mime_type(path: Path, as_text: bool) -> str:
    if as_text or path.suffix.lower() in (".txt", ".csv"):
        return "text/plain"
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is None:
        raise typer.BadParameter(f"Cannot tell the type of {path.name}; use --text")
    return mime_type


@app.command("import")
def import_document(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Statement, receipt or text file"),
    account: str | None = typer.Option(None, "--account", "-a", help="Account ID to link"),
    text: bool = typer.Option(False, "--text", help="Treat the file as pasted text"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Import transactions from a document.

    The document is analyzed by the extraction model, run through the
    automation rules and checked against the ledger for duplicates.
    """
    with open_service(verbose) as service:
        mime_type = _guess_mime_type(file, text)
        content: str | bytes = (
            file.read_text(encoding="utf-8") if mime_type == "text/plain" else file.read_bytes()
        )

        console.print(f"\n[bold blue]Analyzing {file.name}...[/bold blue]")
        result = service.import_document(content, mime_type, account, file.name)

        console.print(f"[green]Imported {len(result.accepted)} transaction(s)[/green]")
        if result.duplicate_pairs:
            console.print(
                f"[yellow]{len(result.duplicate_pairs)} possible duplicate(s) held for review[/yellow]"
            )
        if result.dropped:
            console.print(f"[dim]Skipped {result.dropped} incomplete record(s)[/dim]")

        if result.accepted:
            display_transactions(result.accepted, title="Imported")

        if result.next_view == "review":
            console.print("\n[bold]Some records need a look. Run:[/bold]\n  [cyan]finunify review[/cyan]\n")


@app.command()
def review(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Resolve possible duplicates and review low-confidence transactions."""
    with open_service(verbose) as service:
        pairs = service.pending_duplicates()
        queue = service.review_queue()
        if not pairs and not queue:
            console.print("[green]✓ Nothing to review.[/green]")
            return

        for pair in pairs:
            action = resolve_duplicate_interactive(pair)
            if action is not None:
                service.resolve_duplicate(pair.id, action)

        categories = service.list_categories()
        for tx in queue:
            action = review_transaction_interactive(tx)
            if action == "delete":
                service.review_transaction(tx.id, "delete")
            elif action == "approve":
                service.review_transaction(tx.id, "approve")
            elif action == "edit":
                current = tx.category
                if service.settings.openai_api_key:
                    current = service.suggest_category(tx.original_description)
                category = select_category_interactive(
                    categories, tx.enhanced_description, current=current
                )
                edited = tx.model_copy(update={"category": category or tx.category})
                service.review_transaction(tx.id, "approve", updated=edited)

        console.print(f"\n[bold]{service.review_count()} item(s) still pending review.[/bold]")


@app.command()
def transactions(
    limit: int = typer.Option(25, "--limit", "-n", help="Show the newest N transactions"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List ledger transactions, newest first."""
    with open_service(verbose) as service:
        ledger = sorted(service.ledger(), key=lambda t: t.date, reverse=True)
        if not ledger:
            console.print("[yellow]The ledger is empty.[/yellow]")
            return
        display_transactions(ledger[:limit])


@rules_app.command("run")
def rules_run(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Re-apply every active rule to the whole ledger."""
    with open_service(verbose) as service:
        changed = service.run_rules_on_all()
        console.print(f"[green]✓ Rules updated {changed} transaction(s)[/green]")


@rules_app.command("list")
def rules_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List automation rules in evaluation order."""
    with open_service(verbose) as service:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("When")
        table.add_column("Then")
        table.add_column("Active", justify="center")
        for rule in service.list_rules():
            criteria, actions = rule.criteria, rule.actions
            then = []
            if actions.rename_to:
                then.append(f"rename → {actions.rename_to}")
            if actions.set_category:
                then.append(f"category → {actions.set_category}")
            if actions.add_tags:
                then.append(f"tags + {', '.join(actions.add_tags)}")
            table.add_row(
                rule.id,
                rule.name,
                f"{criteria.field} {criteria.operator} {criteria.value!r}",
                "; ".join(then),
                "✓" if rule.is_active else "",
            )
        console.print(table)


def _parse_participants(
    entries: list[str], mode: SplitType, existing_ids: dict[str, str]
) -> list[SplitParticipant]:
    participants = []
    for entry in entries:
        name, _, value = entry.partition(":")
        name = name.strip()
        if not name:
            raise typer.BadParameter(f"Missing name in {entry!r}")

        participant = SplitParticipant(name=name)
        if name in existing_ids:
            participant.id = existing_ids[name]
        try:
            if mode == "exact":
                participant.amount = Decimal(value or "0")
            elif mode == "shares":
                participant.shares = int(value or "1")
        except (InvalidOperation, ValueError) as e:
            raise typer.BadParameter(f"Invalid value in {entry!r}") from e
        participants.append(participant)
    return participants


@app.command()
def split(
    transaction_id: str = typer.Argument(..., help="Transaction to split"),
    mode: str = typer.Option("equal", "--mode", "-m", help="equal, shares or exact"),
    with_: list[str] = typer.Option(
        [], "--with", "-w", help="Participant as NAME or NAME:VALUE (shares or amount)"
    ),
    exclude_me: bool = typer.Option(False, "--exclude-me", help="Leave yourself out of the split"),
    my_shares: int = typer.Option(1, "--my-shares", help="Your shares in shares mode"),
    clear: bool = typer.Option(False, "--clear", help="Remove the split instead"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Split a transaction with other people.

    Any credit a participant holds on other bills is applied to their new
    share automatically.
    """
    with open_service(verbose) as service:
        if clear:
            service.clear_split(transaction_id)
            console.print(f"[green]✓ Split removed from {transaction_id}[/green]")
            return

        if mode not in ("equal", "shares", "exact"):
            raise typer.BadParameter(f"Unknown mode {mode!r}")
        if not with_:
            raise typer.BadParameter("Name at least one participant with --with")

        tx = service.get_transaction(transaction_id)
        existing_ids = (
            {item.name: item.id for item in tx.split_details.items} if tx.split_details else {}
        )
        participants = _parse_participants(with_, mode, existing_ids)  # type: ignore[arg-type]
        participants.append(
            SplitParticipant(
                name=OWNER_NAME,
                is_owner=True,
                is_selected=not exclude_me,
                shares=0 if exclude_me else my_shares,
            )
        )

        if mode == "exact":
            remainder = owner_remainder(tx, participants)
            console.print(f"Your share: {format_money(remainder)}")

        result = service.save_split(transaction_id, mode, participants)  # type: ignore[arg-type]

        details = result.transaction.split_details
        table = Table(title=f"Split of {result.transaction.enhanced_description}", header_style="bold magenta")
        table.add_column("Item", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Owes", justify="right")
        table.add_column("Paid", justify="right")
        table.add_column("Settled", justify="center")
        for item in details.items if details else []:
            table.add_row(
                item.id,
                item.name,
                format_money(item.amount),
                format_money(item.paid_amount),
                "✓" if item.is_settled else "",
            )
        console.print(table)
        if result.swept:
            console.print(
                f"[dim]Applied existing credit from {len(result.swept)} other bill(s)[/dim]"
            )


@app.command()
def settle(
    person: str = typer.Argument(..., help="Who paid you"),
    amount: str = typer.Argument(..., help="Amount received"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a lump payment and spread it across a person's bills, oldest first."""
    with open_service(verbose) as service:
        try:
            payment = Decimal(amount)
        except InvalidOperation as e:
            raise typer.BadParameter(f"Invalid amount {amount!r}") from e

        owed = service.outstanding_for(person)
        console.print(f"\n{person} currently owes {format_money(owed)}")
        if payment > owed and not yes:
            console.print("[yellow]The payment is more than what is owed; the rest becomes credit.[/yellow]")
            if not confirm("Continue?"):
                console.print("[yellow]Cancelled.[/yellow]")
                return

        updated = service.settle_bulk(person, payment)
        if not updated:
            console.print(f"[yellow]No bills found for {person}.[/yellow]")
            return

        console.print(
            f"[bold green]✓ Applied {format_money(payment, use_color=False).strip()} "
            f"across {len(updated)} bill(s)[/bold green]"
        )
        console.print(f"{person} now owes {format_money(service.outstanding_for(person))}")


@app.command()
def toggle(
    transaction_id: str = typer.Argument(..., help="Transaction holding the split"),
    item_id: str = typer.Argument(..., help="Split item to settle or reopen"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark one split item as paid, or as unpaid if it already is."""
    with open_service(verbose) as service:
        updated = service.toggle_item_settlement(transaction_id, item_id)
        assert updated.split_details is not None
        item = updated.split_details.find_item(item_id)
        assert item is not None
        state = "settled" if item.is_settled else "unpaid"
        console.print(f"[green]✓ {item.name} on {transaction_id} is now {state}[/green]")


@app.command()
def balances(
    person: str | None = typer.Argument(None, help="Show one person's history"),
    open_only: bool = typer.Option(
        False, "--open", help="Only bills still owed or holding credit"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show who owes what, or one person's bills and payments."""
    if open_only and person is None:
        raise typer.BadParameter("--open needs a person")

    with open_service(verbose) as service:
        if person is None:
            summary = service.lending_summary()
            console.print(f"\n  Outstanding: {format_money(summary.total_owed)}")
            console.print(f"  Settled:     {format_money(summary.total_settled)}\n")

            table = Table(title="Balances", header_style="bold magenta")
            table.add_column("Person", style="cyan")
            table.add_column("Balance", justify="right")
            for balance in summary.balances:
                table.add_row(balance.name, format_money(balance.balance))
            console.print(table)
            return

        table = Table(title=f"Bills shared with {person}", header_style="bold magenta")
        table.add_column("Date")
        table.add_column("Description", style="cyan", max_width=40)
        table.add_column("Share", justify="right")
        table.add_column("Paid", justify="right")
        table.add_column("Status")
        entries = service.open_bills(person) if open_only else service.person_history(person)
        for entry in entries:
            item = entry.item
            if item.paid_amount > item.amount:
                status = "credit"
            elif item.is_settled:
                status = "settled"
            else:
                status = "open"
            table.add_row(
                str(entry.transaction.date),
                entry.transaction.enhanced_description,
                format_money(item.amount),
                format_money(item.paid_amount),
                status,
            )
        console.print(table)

        payments = service.payment_history(person)
        if payments:
            console.print("\n[bold]Payments:[/bold]")
            for record in payments:
                console.print(
                    f"  {record.payment.date:%Y-%m-%d}  "
                    f"{format_money(record.payment.amount)}  {record.description}"
                )
        console.print(f"\n  Net balance: {format_money(service.outstanding_for(person))}")


@app.command("rename-person")
def rename_person(
    old: str = typer.Argument(..., help="Current name"),
    new: str = typer.Argument(..., help="New name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Rename a person on every bill they appear on."""
    with open_service(verbose) as service:
        try:
            changed = service.rename_participant(old, new)
        except ValueError as e:
            console.print(f"[yellow]{e}[/yellow]")
            raise typer.Exit(1) from e
        console.print(f"[green]✓ Renamed {old} to {new} on {changed} bill(s)[/green]")


@tags_app.command("list")
def tags_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List tags with how many transactions use them."""
    with open_service(verbose) as service:
        for tag, count in service.list_tags().items():
            console.print(f"  {tag} [dim]({count})[/dim]")


@tags_app.command("rename")
def tags_rename(
    old: str = typer.Argument(..., help="Current tag"),
    new: str = typer.Argument(..., help="New tag"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Rename a tag across the ledger."""
    with open_service(verbose) as service:
        changed = service.rename_tag(old, new)
        console.print(f"[green]✓ Updated {changed} transaction(s)[/green]")


@tags_app.command("delete")
def tags_delete(
    tag: str = typer.Argument(..., help="Tag to remove"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Remove a tag from every transaction."""
    with open_service(verbose) as service:
        changed = service.delete_tag(tag)
        console.print(f"[green]✓ Updated {changed} transaction(s)[/green]")


@app.command()
def mcp():
    """Start the MCP server for assistant integration."""
    from .mcp_server import run_server

    run_server()


if __name__ == "__main__":
    app()
