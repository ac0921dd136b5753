"""Command-line entry points for the Jeongsim ERP toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into calls on the business layer, and printing the
results. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, set_console_level, sheet_client
from .constants import FloorLabel, TransactionType
from .models import Client, Transaction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persist: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="jeongsim-cli",
        description="Command-line tools for the Jeongsim ERP sales ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only show warnings and errors on the console.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that change the local workbook or the remote sheet."""
    specs = {
        "sync": register_sync_command(subparsers),
        "add-client": register_add_client_command(subparsers),
        "delete-client": register_delete_client_command(subparsers),
        "delete-transaction": register_delete_transaction_command(subparsers),
        "mark-paid": register_mark_paid_command(subparsers),
        "push-transaction": register_push_transaction_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only commands such as listings and reports."""
    specs = {
        "test-connection": register_test_connection_command(subparsers),
        "clients": register_clients_command(subparsers),
        "products": register_products_command(subparsers),
        "employees": register_employees_command(subparsers),
        "transactions": register_transactions_command(subparsers),
        "stats": register_stats_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_command(name: str, help_text: str, execute, *, persist: bool) -> CommandSpec:
    """Build a spec for a sub-command that takes no arguments."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, persist=persist)


def register_sync_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sync``."""
    return _simple_command("sync", "Pull clients, products, employees and transactions from the sheet.", run_sync, persist=True)


def register_add_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-client``."""
    name = "add-client"
    help_text = "Register or update a client."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--registration-number", default="")
        parser.add_argument("--owner-name", default="")
        parser.add_argument("--address", default="")
        parser.add_argument("--contact-person", default="")
        parser.add_argument("--email", default="")
        parser.add_argument("--phone", default="")
        parser.add_argument("--note", default="")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_client)


def register_delete_client_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-client``."""
    name = "delete-client"
    help_text = "Delete a client."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--client-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_client)


def register_delete_transaction_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-transaction``."""
    name = "delete-transaction"
    help_text = "Delete a transaction and its items."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_transaction)


def register_mark_paid_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``mark-paid``."""
    name = "mark-paid"
    help_text = "Mark a statement as paid."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.add_argument("--unpaid", action="store_true", help="Clear the paid flag instead.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_mark_paid)


def register_push_transaction_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``push-transaction``."""
    name = "push-transaction"
    help_text = "Append a stored transaction to the remote sales sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_push_transaction, persist=False)


def register_test_connection_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``test-connection``."""
    return _simple_command("test-connection", "Check that the sheet script answers.", run_test_connection, persist=False)


def register_clients_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``clients``."""
    return _simple_command("clients", "List stored clients.", run_clients_report, persist=False)


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    return _simple_command("products", "List stored products.", run_products_report, persist=False)


def register_employees_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``employees``."""
    return _simple_command("employees", "List stored employees.", run_employees_report, persist=False)


def register_transactions_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``transactions``."""
    name = "transactions"
    help_text = "List stored transactions, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--type",
            dest="transaction_type",
            choices=[member.value for member in TransactionType],
            default=None,
        )
        parser.add_argument(
            "--floor",
            choices=[member.value for member in FloorLabel],
            default=None,
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transactions_report, persist=False)


def register_stats_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stats``."""
    return _simple_command("stats", "Display sales totals by month and client.", run_stats_report, persist=False)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    return core_logic.load_runtime_context(target)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_client(args: argparse.Namespace) -> Client:
    """Translate CLI args into a client record."""
    return Client(
        id=args.client_id,
        name=args.name,
        registration_number=args.registration_number,
        owner_name=args.owner_name,
        address=args.address,
        contact_person=args.contact_person,
        email=args.email,
        phone=args.phone,
        note=args.note,
    )


def translate_transaction_filters(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into keyword filters for ``list_transactions``."""
    raw_type = getattr(args, "transaction_type", None)
    return {
        "transaction_type": TransactionType(raw_type) if raw_type else None,
        "floor": getattr(args, "floor", None),
    }


def format_amount(amount: Decimal) -> str:
    """Render a money amount with thousands separators."""
    return f"{amount:,}"


def format_transaction(transaction: Transaction) -> str:
    """Render a one-line summary of a transaction."""
    paid = "paid" if transaction.is_paid else "unpaid"
    floor = transaction.floor or "-"
    return (
        f"{transaction.date}  {transaction.id}  {transaction.type.value:<9}  {floor:<4}  "
        f"{transaction.client_name}  items={len(transaction.items)}  "
        f"total={format_amount(transaction.total_amount)}  {paid}"
    )


def run_sync(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sheet sync and report what was pulled."""

    def report(result: core_logic.SyncResult) -> None:
        print(
            f"Synced {result.clients} clients, {result.products} products, "
            f"{result.employees} employees, {result.transactions} transactions."
        )
        if result.failed_sheets:
            print(f"Failed sheets: {', '.join(result.failed_sheets)}")

    result = core_logic.sync_from_sheet(context, listeners=[report])
    return 0 if result.ok else 5


def run_add_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-client workflow in the BLL."""
    core_logic.add_client(context, translate_add_client(args))
    return 0


def run_delete_client(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.remove_client(context, args.client_id)
    return 0


def run_delete_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.remove_transaction(context, args.transaction_id)
    return 0


def run_mark_paid(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.mark_paid(context, args.transaction_id, paid=not getattr(args, "unpaid", False))
    return 0


def run_push_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Append a stored transaction to the remote sheet."""
    transaction = core_logic.get_transaction(context, args.transaction_id)
    core_logic.push_transaction(context, transaction)
    print(f"Pushed transaction '{transaction.id}'.")
    return 0


def run_test_connection(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if core_logic.check_connection(context):
        print("Connection OK")
        return 0
    print("Connection failed")
    return 1


def run_clients_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for client in core_logic.list_clients(context):
        print(f"{client.id}  {client.name}  {client.contact_person}  {client.phone}")
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for product in core_logic.list_products(context):
        print(f"{product.name}  {product.spec}  {product.unit}  {format_amount(product.unit_price)}")
    return 0


def run_employees_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for employee in core_logic.list_employees(context):
        print(f"{employee.name}  {employee.position}  {employee.phone}")
    return 0


def run_transactions_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print stored transactions matching the requested filters."""
    for transaction in core_logic.list_transactions(context, **translate_transaction_filters(args)):
        print(format_transaction(transaction))
    return 0


def run_stats_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the dashboard summary."""
    stats = core_logic.calculate_dashboard_stats(context)
    print(f"Total sales: {format_amount(stats.total_sales)}")
    print(f"Clients with sales: {stats.client_count}")
    for month, amount in stats.monthly_sales:
        print(f"  {month}  {format_amount(amount)}")
    for name, amount in stats.top_clients:
        print(f"  {name}  {format_amount(amount)}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, sheet_client.SheetServiceError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if getattr(args, "quiet", False):
        set_console_level(logging.WARNING)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if command_table[args.command].persist and exit_code in (0, 5):
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
