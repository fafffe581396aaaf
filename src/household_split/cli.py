"""CLI for household-split using Typer."""

import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import InvalidArgumentError
from .models import (
    BalanceDiscrepancy,
    BalanceHealthCheck,
    CustomPayment,
    CustomSplit,
    EqualSplit,
    EqualSubsetPayment,
    EqualSubsetSplit,
    MemberBalance,
    MemberOnlySplit,
    MemberSplit,
    PaidByMode,
    ProblematicTransaction,
    RecognizedPattern,
    SettlementSuggestion,
    SharedPayment,
    SinglePayment,
    SplitMode,
    Transaction,
)
from .service import LedgerService
from .splits import split_total
from .ui import confirm_action, select_member_interactive

app = typer.Typer(
    name="household-split",
    help="Split shared household expenses and work out who owes whom",
)
member_app = typer.Typer(help="Manage household members")
app.add_typer(member_app, name="member")

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


# ============================================================================
# Option parsing
# ============================================================================


def parse_amount(value: str) -> Decimal:
    """Parse a money amount typed on the command line."""
    try:
        amount = Decimal(value.replace(",", "").lstrip("$"))
    except InvalidOperation as e:
        raise typer.BadParameter(f"'{value}' is not a valid amount") from e
    if not amount.is_finite():
        raise typer.BadParameter(f"'{value}' is not a valid amount")
    if amount != amount.quantize(Decimal("0.01")):
        raise typer.BadParameter(f"'{value}' has fractions of a cent")
    return amount


def parse_date(value: str | None) -> date | None:
    """Parse an ISO date (YYYY-MM-DD)."""
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"'{value}' is not a date (YYYY-MM-DD)") from e


def parse_assignments(
    service: LedgerService, values: list[str]
) -> tuple[dict[str, Decimal] | None, dict[str, Decimal] | None]:
    """
    Parse NAME=AMOUNT or NAME=PCT% pairs.

    Returns:
        Tuple of (amounts, percentages) keyed by member id; exactly one of
        them is set.
    """
    amounts: dict[str, Decimal] = {}
    percentages: dict[str, Decimal] = {}
    for value in values:
        name, sep, raw = value.rpartition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected NAME=AMOUNT, got '{value}'")
        member_id = service.resolve_member(name).id
        raw = raw.strip()
        if raw.endswith("%"):
            percentages[member_id] = parse_amount(raw[:-1])
        else:
            amounts[member_id] = parse_amount(raw)

    if amounts and percentages:
        raise InvalidArgumentError(
            "Use either amounts or percentages for a custom split, not both"
        )
    return amounts or None, percentages or None


def build_split_mode(
    service: LedgerService,
    only: str | None,
    split_with: list[str] | None,
    owed: list[str] | None,
) -> SplitMode | None:
    """Turn the split options into a split mode (None when none were given)."""
    if sum(bool(option) for option in (only, split_with, owed)) > 1:
        raise InvalidArgumentError("Use only one of --only, --split-with and --owed")

    if only:
        return MemberOnlySplit(member_id=service.resolve_member(only).id)
    if split_with:
        member_ids = [service.resolve_member(ref).id for ref in split_with]
        if len(set(member_ids)) == 1:
            return MemberOnlySplit(member_id=member_ids[0])
        return EqualSubsetSplit(member_ids=member_ids)
    if owed:
        amounts, percentages = parse_assignments(service, owed)
        return CustomSplit(amounts=amounts, percentages=percentages)
    return None


def build_paid_by_mode(
    service: LedgerService,
    paid_by: list[str] | None,
    shared: bool,
    paid: list[str] | None,
) -> PaidByMode | None:
    """Turn the paid-by options into a paid-by mode (None when none were given)."""
    if sum(bool(option) for option in (paid_by, shared, paid)) > 1:
        raise InvalidArgumentError("Use only one of --paid-by, --shared and --paid")

    if paid_by:
        member_ids = [service.resolve_member(ref).id for ref in paid_by]
        if len(set(member_ids)) == 1:
            return SinglePayment(member_id=member_ids[0])
        return EqualSubsetPayment(member_ids=member_ids)
    if shared:
        return SharedPayment()
    if paid:
        amounts, percentages = parse_assignments(service, paid)
        return CustomPayment(amounts=amounts, percentages=percentages)
    return None


def pick_member(service: LedgerService, prompt: str) -> str | None:
    """Ask for an active member interactively."""
    members = service.db.get_members(include_inactive=False)
    console.print(f"\n[bold]{prompt}[/bold]")
    return select_member_interactive(members, prompt)


# ============================================================================
# Display
# ============================================================================


def format_money(amount: Decimal, use_color: bool = True, symbol: str = "$") -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    The spaces ensure decimal points align in tables.
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            formatted = f"({symbol}[red]{abs_amount:,.2f}[/red])"
        else:
            formatted = f"({symbol}{abs_amount:,.2f})"
    else:
        if use_color:
            formatted = f" [green]{symbol}{abs_amount:,.2f}[/green] "
        else:
            formatted = f" {symbol}{abs_amount:,.2f} "
    return formatted


def describe_mode(mode: SplitMode | PaidByMode | None, names: dict[str, str]) -> str:
    """Describe a split or paid-by mode in words."""
    if mode is None:
        return "[dim]nothing recorded[/dim]"
    if isinstance(mode, (MemberOnlySplit, SinglePayment)):
        return f"only {names.get(mode.member_id, mode.member_id)}"
    if isinstance(mode, (EqualSubsetSplit, EqualSubsetPayment)):
        people = ", ".join(names.get(m, m) for m in mode.member_ids)
        return f"equally between {people}"
    if isinstance(mode, (EqualSplit, SharedPayment)):
        return "equally between everyone"
    return "custom amounts"


def display_transaction(transaction: Transaction, names: dict[str, str], symbol="$"):
    """Display a transaction's header fields."""
    console.print(f"\n[bold]{transaction.transaction_type.title()}:[/bold]")
    console.print(f"  ID: [dim]{transaction.id}[/dim]")
    console.print(f"  Date: {transaction.date}")
    if transaction.description:
        console.print(f"  Description: {transaction.description}")
    console.print(f"  Amount: {format_money(transaction.amount, symbol=symbol)}")
    if transaction.payer_id:
        payer = names.get(transaction.payer_id, transaction.payer_id)
        label = (
            "Received by"
            if transaction.transaction_type in ("income", "reimbursement")
            else "From"
        )
        console.print(f"  {label}: {payer}")
    if transaction.payee_id:
        payee = names.get(transaction.payee_id, transaction.payee_id)
        console.print(f"  To: {payee}")
    if transaction.linked_expense_id:
        console.print(f"  Reimburses: [dim]{transaction.linked_expense_id}[/dim]")


def display_split(
    transaction: Transaction,
    rows: list[MemberSplit],
    names: dict[str, str],
    symbol: str = "$",
):
    """Display split rows in a table, with a check that both sides add up."""
    table = Table(title="Split", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Owes", justify="right")
    table.add_column("%", justify="right", style="dim")
    table.add_column("Paid", justify="right")
    table.add_column("%", justify="right", style="dim")

    for row in rows:
        table.add_row(
            names.get(row.member_id, row.member_id),
            format_money(row.owed_amount, symbol=symbol),
            f"{row.owed_percentage:.2f}",
            format_money(row.paid_amount, symbol=symbol),
            f"{row.paid_percentage:.2f}",
        )

    console.print(table)

    for side in ("owed", "paid"):
        total = split_total(rows, side)
        if total == transaction.amount:
            console.print(f"  [green]✓ {side.title()} amounts add up[/green]")
        else:
            console.print(
                f"  [red]✗ {side.title()} amounts add up to {total}, "
                f"expected {transaction.amount}[/red]"
            )


def display_pattern(pattern: RecognizedPattern, names: dict[str, str]):
    """Display the recognized split modes."""
    console.print(f"  Split: {describe_mode(pattern.split_mode, names)}")
    console.print(f"  Paid by: {describe_mode(pattern.paid_by_mode, names)}")


def display_balances(balances: list[MemberBalance], symbol: str = "$"):
    """Display member balances in a table."""
    table = Table(title="Balances", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Paid", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("Balance", justify="right")

    for b in balances:
        table.add_row(
            b.display_name or b.member_id,
            format_money(b.total_paid, use_color=False, symbol=symbol),
            format_money(b.total_owed, use_color=False, symbol=symbol),
            format_money(b.net_balance, symbol=symbol),
        )

    console.print(table)
    console.print(
        "[dim]A positive balance is owed money; a negative balance owes.[/dim]"
    )


def display_settlements(
    suggestions: list[SettlementSuggestion], names: dict[str, str], symbol="$"
):
    """Display suggested settlement transfers."""
    if not suggestions:
        console.print("[green]✓ Everyone is settled up.[/green]")
        return

    table = Table(
        title="Suggested Settlements", show_header=True, header_style="bold magenta"
    )
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Amount", justify="right")

    for s in suggestions:
        table.add_row(
            names.get(s.from_member_id, s.from_member_id),
            names.get(s.to_member_id, s.to_member_id),
            format_money(s.amount, use_color=False, symbol=symbol),
        )

    console.print(table)


def display_health(
    health: BalanceHealthCheck,
    problems: list[ProblematicTransaction],
    symbol: str = "$",
):
    """Display the balance health check and any problematic transactions."""
    if health.status == "OK":
        console.print("[green]✓ Balances sum to zero[/green]")
    else:
        console.print(f"[red]✗ {health.message}[/red]")

    if not problems:
        console.print("[green]✓ Every expense's splits add up[/green]")
        return

    table = Table(
        title="Problematic Transactions", show_header=True, header_style="bold red"
    )
    table.add_column("Date")
    table.add_column("Description", style="cyan", width=30)
    table.add_column("Amount", justify="right")
    table.add_column("Owed Sum", justify="right")
    table.add_column("Paid Sum", justify="right")
    table.add_column("ID", style="dim")

    for p in problems:
        table.add_row(
            str(p.date),
            p.description[:30],
            format_money(p.expected_amount, use_color=False, symbol=symbol),
            format_money(p.actual_owed_sum, use_color=False, symbol=symbol),
            format_money(p.actual_paid_sum, use_color=False, symbol=symbol),
            p.transaction_id,
        )

    console.print(table)


def display_discrepancies(discrepancies: list[BalanceDiscrepancy], symbol="$"):
    """Display differences between local and backend balances."""
    if not discrepancies:
        console.print("[green]✓ Local balances match the backend[/green]")
        return

    table = Table(
        title="Balance Discrepancies", show_header=True, header_style="bold red"
    )
    table.add_column("Member", style="cyan")
    table.add_column("Local", justify="right")
    table.add_column("Backend", justify="right")
    table.add_column("Difference", justify="right")

    for d in discrepancies:
        table.add_row(
            d.display_name or d.member_id,
            format_money(d.local_balance, use_color=False, symbol=symbol),
            format_money(d.backend_balance, use_color=False, symbol=symbol),
            format_money(d.difference, symbol=symbol),
        )

    console.print(table)


def display_history(
    transactions: list[Transaction], names: dict[str, str], symbol: str = "$"
):
    """Display transactions, newest first."""
    table = Table(title="Transactions", show_header=True, header_style="bold magenta")
    table.add_column("Date")
    table.add_column("Type", style="yellow")
    table.add_column("Description", style="cyan", width=30)
    table.add_column("Amount", justify="right")
    table.add_column("Member")
    table.add_column("ID", style="dim")

    for t in transactions:
        member = names.get(t.payer_id, "") if t.payer_id else ""
        if t.transaction_type == "settlement" and t.payee_id:
            member = f"{member} → {names.get(t.payee_id, t.payee_id)}"
        desc = t.description
        table.add_row(
            str(t.date),
            t.transaction_type,
            desc[:30] + "..." if len(desc) > 30 else desc,
            format_money(t.amount, use_color=False, symbol=symbol),
            member,
            t.id,
        )

    console.print(table)


def member_names(service: LedgerService) -> dict[str, str]:
    """Map member ids to display names."""
    return {m.id: m.display_name for m in service.db.get_members()}


# ============================================================================
# Member commands
# ============================================================================


@member_app.command("add")
def member_add(
    name: str = typer.Argument(..., help="Display name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a member to the household."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        member = service.add_member(name)
        console.print(
            f"[green]✓ Added {member.display_name}[/green] [dim]({member.id})[/dim]"
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@member_app.command("list")
def member_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List household members, including inactive ones."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)

        members = db.get_members()
        if not members:
            console.print(
                "[yellow]No members yet. Add one with "
                "[cyan]household-split member add NAME[/cyan][/yellow]"
            )
            return

        table = Table(title="Members", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Status")
        table.add_column("ID", style="dim")
        for m in members:
            status = "[green]active[/green]" if m.is_active else "[dim]inactive[/dim]"
            table.add_row(m.display_name, status, m.id)
        console.print(table)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


def _set_member_active(name: str, active: bool, verbose: bool):
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        member = service.set_member_active(name, active)
        state = "active" if active else "inactive"
        console.print(f"[green]✓ {member.display_name} is now {state}[/green]")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@member_app.command("deactivate")
def member_deactivate(
    name: str = typer.Argument(..., help="Member name or ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Mark a member as inactive.

    Their history is kept. They stop being included in new expenses once
    their balance is settled.
    """
    _set_member_active(name, False, verbose)


@member_app.command("reactivate")
def member_reactivate(
    name: str = typer.Argument(..., help="Member name or ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark an inactive member as active again."""
    _set_member_active(name, True, verbose)


# ============================================================================
# Recording transactions
# ============================================================================


@app.command()
def expense(
    amount: str = typer.Argument(..., help="Expense amount, e.g. 42.50"),
    description: str = typer.Argument("", help="What it was for"),
    paid_by: list[str] | None = typer.Option(
        None, "--paid-by", "-p", help="Who paid (repeat to share the payment equally)"
    ),
    shared: bool = typer.Option(
        False, "--shared", help="Every participant paid an equal share"
    ),
    paid: list[str] | None = typer.Option(
        None, "--paid", help="Custom payment, NAME=AMOUNT or NAME=PCT% (repeatable)"
    ),
    split_with: list[str] | None = typer.Option(
        None, "--split-with", "-s", help="Split equally between these members only"
    ),
    only: str | None = typer.Option(
        None, "--only", help="Charge the whole expense to one member"
    ),
    owed: list[str] | None = typer.Option(
        None, "--owed", help="Custom split, NAME=AMOUNT or NAME=PCT% (repeatable)"
    ),
    participant: list[str] | None = typer.Option(
        None,
        "--participant",
        help="Members to include (default: everyone active, plus inactive "
        "members with an open balance)",
    ),
    on: str | None = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD)"),
    category: str | None = typer.Option(None, "--category", help="Category ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record a shared expense.

    By default the expense is split equally between everyone. Use --only,
    --split-with or --owed to split it differently. If no payer option is
    given you'll be asked who paid.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        split_mode = build_split_mode(service, only, split_with, owed) or EqualSplit()
        paid_by_mode = build_paid_by_mode(service, paid_by, shared, paid)
        if paid_by_mode is None:
            payer_id = pick_member(service, "Paid by")
            if payer_id is None:
                console.print("[yellow]No payer selected.[/yellow]")
                return
            paid_by_mode = SinglePayment(member_id=payer_id)

        transaction, rows = service.record_expense(
            parse_amount(amount),
            description,
            split_mode,
            paid_by_mode,
            participants=participant,
            on=parse_date(on),
            category_id=category,
        )

        console.print("\n[bold green]✓ Expense recorded[/bold green]")
        names = member_names(service)
        display_transaction(transaction, names, symbol=settings.currency_symbol)
        display_split(transaction, rows, names, symbol=settings.currency_symbol)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def edit(
    transaction_id: str = typer.Argument(..., help="Expense ID"),
    amount: str | None = typer.Option(None, "--amount", "-a", help="New amount"),
    description: str | None = typer.Option(
        None, "--description", help="New description"
    ),
    paid_by: list[str] | None = typer.Option(
        None, "--paid-by", "-p", help="Who paid (repeat to share the payment equally)"
    ),
    shared: bool = typer.Option(
        False, "--shared", help="Every participant paid an equal share"
    ),
    paid: list[str] | None = typer.Option(
        None, "--paid", help="Custom payment, NAME=AMOUNT or NAME=PCT% (repeatable)"
    ),
    split_with: list[str] | None = typer.Option(
        None, "--split-with", "-s", help="Split equally between these members only"
    ),
    only: str | None = typer.Option(
        None, "--only", help="Charge the whole expense to one member"
    ),
    owed: list[str] | None = typer.Option(
        None, "--owed", help="Custom split, NAME=AMOUNT or NAME=PCT% (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Edit an expense.

    Anything not given is kept as it was. Changing only the amount keeps
    the same kind of split: an equal split stays equal and a custom split
    keeps its percentages.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        transaction, rows = service.update_expense(
            transaction_id,
            amount=parse_amount(amount) if amount is not None else None,
            description=description,
            split_mode=build_split_mode(service, only, split_with, owed),
            paid_by_mode=build_paid_by_mode(service, paid_by, shared, paid),
        )

        console.print("\n[bold green]✓ Expense updated[/bold green]")
        names = member_names(service)
        display_transaction(transaction, names, symbol=settings.currency_symbol)
        display_split(transaction, rows, names, symbol=settings.currency_symbol)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def income(
    amount: str = typer.Argument(..., help="Amount received"),
    description: str = typer.Argument("", help="Where it came from"),
    received_by: str | None = typer.Option(
        None, "--received-by", "-r", help="Who received it"
    ),
    on: str | None = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record income. Income is tracked but doesn't change balances."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        receiver = received_by or pick_member(service, "Received by")
        if receiver is None:
            console.print("[yellow]No member selected.[/yellow]")
            return

        transaction = service.record_income(
            parse_amount(amount), description, receiver, on=parse_date(on)
        )
        console.print("\n[bold green]✓ Income recorded[/bold green]")
        display_transaction(
            transaction, member_names(service), symbol=settings.currency_symbol
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def settle(
    amount: str = typer.Argument(..., help="Amount paid"),
    from_member: str = typer.Option(..., "--from", help="Who paid"),
    to_member: str = typer.Option(..., "--to", help="Who was paid"),
    on: str | None = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a payment from one member to another."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        transaction = service.record_settlement(
            parse_amount(amount), from_member, to_member, on=parse_date(on)
        )
        console.print(f"\n[bold green]✓ {transaction.description}[/bold green]")
        display_transaction(
            transaction, member_names(service), symbol=settings.currency_symbol
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def reimburse(
    amount: str = typer.Argument(..., help="Amount reimbursed"),
    description: str = typer.Argument("", help="What the reimbursement was for"),
    received_by: str | None = typer.Option(
        None, "--received-by", "-r", help="Who received the money"
    ),
    expense_id: str | None = typer.Option(
        None, "--expense", "-e", help="Expense this reimburses"
    ),
    transaction_id: str | None = typer.Option(
        None, "--id", help="Update an existing reimbursement instead of adding one"
    ),
    on: str | None = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record a reimbursement (a refund, or money back from outside the household).

    Link it to an expense with --expense; it can't be more than what remains
    of that expense after earlier reimbursements.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        receiver = received_by or pick_member(service, "Received by")
        if receiver is None:
            console.print("[yellow]No member selected.[/yellow]")
            return

        transaction = service.record_reimbursement(
            parse_amount(amount),
            description,
            receiver,
            expense_id=expense_id,
            on=parse_date(on),
            transaction_id=transaction_id,
        )
        console.print("\n[bold green]✓ Reimbursement recorded[/bold green]")
        display_transaction(
            transaction, member_names(service), symbol=settings.currency_symbol
        )

        if expense_id:
            remaining = service.remaining_reimbursable(expense_id)
            console.print(
                f"  Remaining on expense: "
                f"{format_money(remaining, symbol=settings.currency_symbol)}"
            )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def delete(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete a transaction."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        transaction = service.get_transaction(transaction_id)
        display_transaction(
            transaction, member_names(service), symbol=settings.currency_symbol
        )

        if not yes and not confirm_action("\nDelete this transaction?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        service.delete_transaction(transaction_id)
        console.print("[green]✓ Transaction deleted[/green]")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


# ============================================================================
# Viewing
# ============================================================================


@app.command()
def show(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a transaction with its split and how it was split."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        transaction, rows, pattern = service.load_for_editing(transaction_id)
        names = member_names(service)
        display_transaction(transaction, names, symbol=settings.currency_symbol)

        if rows:
            display_pattern(pattern, names)
            console.print()
            display_split(transaction, rows, names, symbol=settings.currency_symbol)

        if transaction.transaction_type == "expense":
            remaining = service.remaining_reimbursable(transaction.id)
            if remaining != transaction.amount:
                console.print(
                    f"  Not yet reimbursed: "
                    f"{format_money(remaining, symbol=settings.currency_symbol)}"
                )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="How many to show"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List recent transactions."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        transactions = db.get_transactions()[:limit]
        if not transactions:
            console.print("[yellow]No transactions yet.[/yellow]")
            return

        display_history(
            transactions, member_names(service), symbol=settings.currency_symbol
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def balances(
    remote: bool = typer.Option(
        False, "--remote", help="Compute from the household backend's history"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show how much each member is owed or owes."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        snapshot = None
        if remote:
            console.print("[bold blue]Fetching household from backend...[/bold blue]")
            snapshot, _ = service.fetch_backend_snapshot()

        display_balances(
            service.compute_balances(snapshot), symbol=settings.currency_symbol
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command("settle-up")
def settle_up(
    remote: bool = typer.Option(
        False, "--remote", help="Compute from the household backend's history"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Suggest payments that settle everyone up.

    This is a quick greedy plan, not necessarily the fewest payments.
    Record each payment with `household-split settle`.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        snapshot = service.local_snapshot()
        if remote:
            console.print("[bold blue]Fetching household from backend...[/bold blue]")
            snapshot, _ = service.fetch_backend_snapshot()

        names = {m.id: m.display_name for m in snapshot.members}
        display_settlements(
            service.suggest_settlements(snapshot),
            names,
            symbol=settings.currency_symbol,
        )

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def health(
    remote: bool = typer.Option(
        False, "--remote", help="Check the household backend's history"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Check that balances sum to zero and every expense's splits add up."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        snapshot = None
        if remote:
            console.print("[bold blue]Fetching household from backend...[/bold blue]")
            snapshot, _ = service.fetch_backend_snapshot()

        check, problems = service.health_check(snapshot)
        display_health(check, problems, symbol=settings.currency_symbol)
        if check.status != "OK" or problems:
            sys.exit(1)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command("cross-check")
def cross_check(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Compare balances computed here with the backend's own balances."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        console.print("[bold blue]Fetching household from backend...[/bold blue]")
        local, discrepancies = service.cross_check_with_backend()
        display_balances(local, symbol=settings.currency_symbol)
        display_discrepancies(discrepancies, symbol=settings.currency_symbol)
        if discrepancies:
            sys.exit(1)

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


@app.command()
def totals(
    start: str | None = typer.Option(None, "--from", help="First day (YYYY-MM-DD)"),
    end: str | None = typer.Option(None, "--to", help="Last day (YYYY-MM-DD)"),
    member: list[str] | None = typer.Option(
        None, "--member", "-m", help="Only count these members' portion (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show total spending and income for a period.

    Expenses are counted net of their reimbursements. Reimbursements that
    aren't linked to an expense count as income. With --member, only the
    members' share of each expense and the income they received is counted.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        db = Database(settings.database_path)
        service = LedgerService(settings, db)

        result = service.period_totals(parse_date(start), parse_date(end), member)
        symbol = settings.currency_symbol
        if result.member_ids is not None:
            names = member_names(service)
            who = ", ".join(sorted(names.get(m, m) for m in result.member_ids))
            console.print(f"\n[bold]Totals for {who}:[/bold]")
        else:
            console.print("\n[bold]Totals:[/bold]")
        console.print(f"  Expenses: {format_money(result.expenses, symbol=symbol)}")
        console.print(f"  Income:   {format_money(result.income, symbol=symbol)}")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "db" in locals():
            db.close()


if __name__ == "__main__":
    app()
