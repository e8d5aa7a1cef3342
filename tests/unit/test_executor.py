import pytest

from sap_assistant.agent.assembler import ResponseAssembler
from sap_assistant.agent.definitions import DefinitionAnswer
from sap_assistant.retrieval.executor import (
    INVENTORY_COLUMNS,
    SALES_ORDER_COLUMNS,
    RetrievalExecutor,
)
from sap_assistant.types import (
    DetailPayload,
    FormRequest,
    FormTriggerPayload,
    TablePayload,
    TextPayload,
    TextReply,
)


@pytest.fixture
def executor(datasets) -> RetrievalExecutor:
    return RetrievalExecutor(datasets)


def _column(result, header: str) -> list:
    field = next(column.field for column in result.columns if column.header == header)
    return [record[field] for record in result.records]


def test_inventory_by_descriptive_name(executor) -> None:
    result = executor.run("query_inventory", {"material_id": "bearings"})

    assert _column(result, "Material") == ["BRG-2001", "BRG-2002", "BRG-2003"]
    assert result.columns == INVENTORY_COLUMNS


def test_inventory_multi_item_request(executor) -> None:
    result = executor.run("query_inventory", {"material_id": "pumps and valves"})

    assert _column(result, "Material") == [
        "PUMP-1001",
        "PUMP-1002",
        "PUMP-1003",
        "VLV-3001",
        "VLV-3002",
    ]


def test_inventory_numeric_filter_over_whole_dataset(executor) -> None:
    result = executor.run(
        "query_inventory", {"material_id": None, "comparison": "less than", "quantity": "100"}
    )

    assert _column(result, "Material") == [
        "PUMP-1002",
        "PUMP-1003",
        "BRG-2003",
        "VLV-3002",
        "MTR-4001",
    ]


def test_inventory_unusable_filter_is_ignored(executor) -> None:
    result = executor.run("query_inventory", {"comparison": "around", "quantity": "100"})

    assert len(result.records) == 12


def test_no_match_keeps_column_schema(executor) -> None:
    result = executor.run("query_inventory", {"material_id": "unobtainium"})

    assert result.records == []
    assert result.columns == INVENTORY_COLUMNS


def test_sales_orders_by_customer_and_status(executor) -> None:
    result = executor.run("get_sales_orders", {"customer": "TechCorp", "status": "open"})

    assert _column(result, "ID") == [5001, 5005]
    assert set(_column(result, "Status")) == {"Open"}
    assert result.columns == SALES_ORDER_COLUMNS


def test_sales_orders_without_filters_return_everything(executor) -> None:
    result = executor.run("get_sales_orders", {"customer": "null", "status": ""})

    assert len(result.records) == 10


def test_sales_orders_by_material_name(executor) -> None:
    result = executor.run("get_sales_orders", {"material": "seal"})

    assert _column(result, "ID") == [5005]


def test_purchase_orders_by_material_resolved_through_inventory(executor) -> None:
    result = executor.run("get_purchase_orders", {"material": "bearings"})

    assert _column(result, "ID") == [4500017102, 4500017103]


def test_purchase_orders_by_vendor_and_status(executor) -> None:
    result = executor.run("get_purchase_orders", {"vendor": "SKF", "status": "delivered"})

    assert _column(result, "ID") == [4500017102]


def test_unknown_plan_raises(executor) -> None:
    with pytest.raises(KeyError):
        executor.run("get_invoices", {})


@pytest.mark.parametrize(
    ("identifier", "dataset"),
    [
        ("PUMP-1001", "inventory"),
        ("pump-1001", "inventory"),
        ("order 5003", "sales_orders"),
        ("4500017102", "purchase_orders"),
    ],
)
def test_find_record(executor, identifier: str, dataset: str) -> None:
    found = executor.find_record(identifier)

    assert found is not None
    assert found.dataset == dataset


def test_find_record_missing(executor) -> None:
    assert executor.find_record("show me 9999") is None
    assert executor.find_record("") is None


def test_assembler_table_rows_follow_column_headers(executor) -> None:
    result = executor.run("get_sales_orders", {"customer": "Global Systems"})

    payload = ResponseAssembler().assemble(result)

    assert isinstance(payload, TablePayload)
    assert payload.columns == ["ID", "Customer", "Material", "Quantity", "Status", "Value"]
    assert payload.rows[0] == {
        "ID": 5003,
        "Customer": "Global Systems",
        "Material": "VLV-3001",
        "Quantity": 40,
        "Status": "In Process",
        "Value": 9600,
    }
    dumped = payload.model_dump(by_alias=True)
    assert set(dumped) == {"type", "tableColumns", "tableData"}


def test_assembler_other_shapes(executor) -> None:
    assembler = ResponseAssembler()

    detail = assembler.assemble(executor.find_record("BRG-2001"))
    assert isinstance(detail, DetailPayload)
    assert detail.fields["Description"] == "Ball Bearing 6204"
    assert detail.model_dump(by_alias=True)["detailData"]["Stock Level"] == 1200

    assert assembler.assemble(TextReply("hi")) == TextPayload(content="hi")
    assert assembler.assemble(
        DefinitionAnswer(content="FB60: ...", outcome="grounded", shape="definition")
    ) == TextPayload(content="FB60: ...")
    assert assembler.assemble(FormRequest("leave_application")) == FormTriggerPayload()

    with pytest.raises(TypeError):
        assembler.assemble({"raw": "dict"})


@pytest.mark.parametrize(
    ("status", "expected"),
    [("delivered", "Delivered"), ("ordered", "Ordered"), ("in transit", "In Transit")],
)
def test_purchase_orders_status_filter_is_exact_enough(executor, status: str, expected: str) -> None:
    result = executor.run("get_purchase_orders", {"status": status})

    assert result.records
    assert set(_column(result, "Status")) == {expected}


def test_sales_orders_in_process_status(executor) -> None:
    result = executor.run("get_sales_orders", {"status": "in process"})

    assert _column(result, "ID") == [5003, 5009]
