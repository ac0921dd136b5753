"""Integration tests describing the end-to-end Jeongsim ERP workflows.

These scenarios run a sync against a canned spreadsheet, write the workbook to
disk, and read it back through the business layer and the CLI.
"""

from __future__ import annotations

from decimal import Decimal

from jeongsim_erp import cli, constants, core_logic, data_manager


def _remote_sheets(make_row) -> dict:
    return {
        "company": [
            ["(주)한국정밀", "101-81-12345", "김철수", "서울시", "박대리"],
            ["성수디자인", "220-88-55555"],
        ],
        "info": [["부품 조립 A", "EA", "개", "150"]],
        "employee": [["홍길동", "팀장", "", "", "https://drive.google.com/file/d/SIG/view"]],
        "office": [["정심작업장", "313-82-67320", "권오건"]],
        "data": [
            make_row(id="1001", date="2023-10-15T15:00:00.000Z", floor="1F"),
            make_row(id="1001", date="2023-10-15T15:00:00.000Z", item="부품 B", supply="50,000", tax="5,000"),
            make_row(id="1001", date="2023-10-16", client="성수디자인", floor="2"),
            make_row(id="", client="", item=""),
        ],
        "estimate": [
            make_row(id="", doc_type="견적서", client="성수디자인", date="2023-09-01"),
        ],
    }


def test_sync_persist_and_reload_flow(runtime_context, fake_sheet, make_row):
    """Pull everything, write it to disk, and read it back."""

    context = runtime_context
    fake_sheet(_remote_sheets(make_row))

    result = core_logic.sync_from_sheet(context)
    assert result.ok
    core_logic.persist_context(context)

    context = core_logic.refresh_context(context)
    transactions = core_logic.list_transactions(context)

    assert [t.id for t in transactions] == ["1001", "1001_split_2", "gen-id-0"]

    first, split, estimate = transactions
    assert first.date == "2023-10-16"
    assert first.floor == "1층"
    assert first.client_id == "sheet-client-0"
    assert first.contact_person == "박대리"
    assert first.total_amount == Decimal("220000")
    assert [item.product_id for item in first.items] == ["sheet-item-1001-0", "sheet-item-1001-1"]

    assert split.client_name == "성수디자인"
    assert split.client_id == "sheet-client-1"
    assert split.floor == "2층"

    assert estimate.type is constants.TransactionType.QUOTATION
    assert estimate.client_id == "sheet-client-1"

    employees = core_logic.list_employees(context)
    assert employees[0].signature_image.startswith("https://drive.google.com/thumbnail?id=SIG")
    assert data_manager.get_company_info(context.workbook).owner_name == "권오건"

    stats = core_logic.calculate_dashboard_stats(context)
    assert stats.total_sales == Decimal("385000")
    assert stats.monthly_sales == [("2023-10", Decimal("385000"))]


def test_resync_replaces_transactions_wholesale(runtime_context, fake_sheet, make_row):
    context = runtime_context
    fake_sheet(_remote_sheets(make_row))
    core_logic.sync_from_sheet(context)

    fake_sheet({"data": [make_row(id="2002", client="성수디자인")]})
    result = core_logic.sync_from_sheet(context)

    assert result.transactions == 1
    assert [t.id for t in core_logic.list_transactions(context)] == ["2002"]
    # empty pulls leave the previous master data in place
    assert len(core_logic.list_clients(context)) == 2


def test_cli_sync_then_report(config_factory, fake_sheet, make_row, capsys):
    bundle = config_factory()
    fake_sheet(_remote_sheets(make_row))

    assert cli.main(["--config", str(bundle.config_path), "sync"]) == 0
    capsys.readouterr()

    assert cli.main(["--config", str(bundle.config_path), "transactions", "--floor", "2층"]) == 0
    output = capsys.readouterr().out
    assert "1001_split_2" in output
    assert "gen-id-0" not in output


def test_cli_mark_paid_persists(config_factory, fake_sheet, make_row):
    bundle = config_factory()
    fake_sheet(_remote_sheets(make_row))
    config = str(bundle.config_path)

    assert cli.main(["--config", config, "sync"]) == 0
    assert cli.main(["--config", config, "mark-paid", "--transaction-id", "1001"]) == 0
    assert cli.main(["--config", config, "mark-paid", "--transaction-id", "gen-id-0"]) == 2

    context = core_logic.load_runtime_context(bundle.config_path)
    assert core_logic.get_transaction(context, "1001").is_paid is True


def test_cli_sync_offline_is_a_business_error(config_factory):
    bundle = config_factory(script_url="")

    assert cli.main(["--config", str(bundle.config_path), "sync"]) == 2
