"""Built-in tool catalog for the SAP assistant."""

from __future__ import annotations

from pydantic import Field

from sap_assistant.agent.definitions import DefinitionAnswer, DefinitionResolver
from sap_assistant.agent.registry import ToolArgs, ToolContext, ToolRegistry, ToolSpec
from sap_assistant.retrieval.executor import DetailResult, RetrievalExecutor, RetrievalResult
from sap_assistant.types import FormRequest, TextReply

DEFINITION_TOOL = "get_sap_definition"
LEAVE_FORM_TOOL = "show_leave_application_form"
INVENTORY_TOOL = "query_inventory"
SALES_ORDERS_TOOL = "get_sales_orders"
PURCHASE_ORDERS_TOOL = "get_purchase_orders"
RECORD_DETAILS_TOOL = "get_record_details"

RECORD_NOT_FOUND = (
    "I couldn't find a material or order with the identifier '{identifier}'. "
    "Could you check the number?"
)
MISSING_IDENTIFIER = "Which material ID or order number would you like to see details for?"


class DefinitionInput(ToolArgs):
    term: str | None = Field(
        default=None,
        description="The specific SAP term, topic, T-code, or abbreviation the user is asking about.",
    )


class LeaveFormInput(ToolArgs):
    pass


class InventoryInput(ToolArgs):
    material_id: str | None = Field(
        default=None,
        description=(
            "(Optional, but attempt extraction) The specific ID or name of the material the "
            "user mentioned, e.g. 'PUMP-1001' or 'bearings'. Several items may be comma-separated."
        ),
    )
    comparison: str | None = Field(
        default=None,
        description="(Optional) The filter operator, such as 'less than' or 'greater than'.",
    )
    quantity: str | None = Field(
        default=None,
        description="(Optional) The numeric value to compare the stock level against, e.g. 1000.",
    )


class SalesOrdersInput(ToolArgs):
    customer: str | None = Field(
        default=None, description="(Optional) The name of the customer to filter by."
    )
    status: str | None = Field(
        default=None,
        description="(Optional) The status of the orders to filter by (e.g. 'Open').",
    )
    material: str | None = Field(
        default=None,
        description="(Optional) A material ID or item name the orders must contain.",
    )


class PurchaseOrdersInput(ToolArgs):
    vendor: str | None = Field(
        default=None, description="(Optional) The name of the vendor to filter by."
    )
    status: str | None = Field(
        default=None,
        description="(Optional) The status of the orders to filter by (e.g. 'Ordered').",
    )
    material: str | None = Field(
        default=None,
        description="(Optional) A material ID or item name the orders must contain.",
    )


class RecordDetailsInput(ToolArgs):
    identifier: str | None = Field(
        default=None,
        description="The material ID (e.g. 'PUMP-1001') or order number (e.g. '5001').",
    )


TOOL_DESCRIPTIONS: dict[str, str] = {
    DEFINITION_TOOL: (
        "Use this tool ONLY to define or explain a specific SAP term, concept, T-code "
        "(like 'fb60', 'MIRO', 'fb 60'), document type or abbreviation, or to explain how an "
        "SAP process works (e.g. 'What is fb60?', 'What is a purchase order?', "
        "'Define S/4HANA', 'process for sales order'). Singular 'what is a ...' questions ask "
        "for a definition. Never use it to list or look up actual records. "
        "Extract the specific term/topic."
    ),
    LEAVE_FORM_TOOL: (
        "Use this tool when the user explicitly asks to apply for leave, request time off, "
        "or wants a leave form."
    ),
    INVENTORY_TOOL: (
        "Use this tool when the user asks about stock levels or asks if a specific "
        "material/item is in stock (e.g. 'check stock', 'do we have bearings?', "
        "'materials with stock below 100'). You MUST extract the material name/ID if provided."
    ),
    SALES_ORDERS_TOOL: (
        "Use this tool when the user wants to see, list or find actual sales order records "
        "(e.g. 'what are the sales orders', 'show sales orders for TechCorp', 'open sales "
        "orders'). Plural 'what are the ... orders' questions ask for data, not a definition. "
        "Can be filtered by customer name, status (e.g. 'open', 'in process') or material. "
        "Extract filters if provided."
    ),
    PURCHASE_ORDERS_TOOL: (
        "Use this tool when the user wants to see, list or find actual purchase order records "
        "(e.g. 'what are the purchase orders', 'show purchase orders from SKF', 'delivered "
        "POs'). Plural 'what are the ... orders' questions ask for data, not a definition. "
        "Can be filtered by vendor name, status (e.g. 'ordered', 'delivered') or material. "
        "Extract filters if provided."
    ),
    RECORD_DETAILS_TOOL: (
        "Use this tool when the user asks for the details of ONE specific material or order "
        "by its identifier (e.g. 'details of PUMP-1001', 'show order 5003')."
    ),
}


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    executor: RetrievalExecutor,
    resolver: DefinitionResolver,
) -> None:
    """Register the fixed tool catalog.

    Tools:
    - `get_sap_definition`: knowledge-base grounded explanation.
    - `show_leave_application_form`: asks the UI to open the leave form.
    - `query_inventory`: material stock lookup with numeric filter.
    - `get_sales_orders` / `get_purchase_orders`: order lookups.
    - `get_record_details`: one record by exact identifier.
    """

    async def _define(input_data: DefinitionInput, context: ToolContext) -> DefinitionAnswer:
        return await resolver.resolve(input_data.term, context.utterance)

    async def _leave_form(input_data: LeaveFormInput, context: ToolContext) -> FormRequest:
        return FormRequest(form="leave_application")

    async def _inventory(input_data: InventoryInput, context: ToolContext) -> RetrievalResult:
        return executor.run(INVENTORY_TOOL, input_data.model_dump())

    async def _sales_orders(input_data: SalesOrdersInput, context: ToolContext) -> RetrievalResult:
        return executor.run(SALES_ORDERS_TOOL, input_data.model_dump())

    async def _purchase_orders(
        input_data: PurchaseOrdersInput, context: ToolContext
    ) -> RetrievalResult:
        return executor.run(PURCHASE_ORDERS_TOOL, input_data.model_dump())

    async def _record_details(
        input_data: RecordDetailsInput, context: ToolContext
    ) -> DetailResult | TextReply:
        if not input_data.identifier:
            return TextReply(content=MISSING_IDENTIFIER)
        found = executor.find_record(input_data.identifier)
        if found is None:
            return TextReply(content=RECORD_NOT_FOUND.format(identifier=input_data.identifier))
        return found

    registry.register(
        ToolSpec(
            name=DEFINITION_TOOL,
            description=TOOL_DESCRIPTIONS[DEFINITION_TOOL],
            args_schema=DefinitionInput,
            handler=_define,
            tags=["knowledge", "rag"],
        )
    )
    registry.register(
        ToolSpec(
            name=LEAVE_FORM_TOOL,
            description=TOOL_DESCRIPTIONS[LEAVE_FORM_TOOL],
            args_schema=LeaveFormInput,
            handler=_leave_form,
            tags=["form"],
        )
    )
    registry.register(
        ToolSpec(
            name=INVENTORY_TOOL,
            description=TOOL_DESCRIPTIONS[INVENTORY_TOOL],
            args_schema=InventoryInput,
            handler=_inventory,
            tags=["data", "materials"],
        )
    )
    registry.register(
        ToolSpec(
            name=SALES_ORDERS_TOOL,
            description=TOOL_DESCRIPTIONS[SALES_ORDERS_TOOL],
            args_schema=SalesOrdersInput,
            handler=_sales_orders,
            tags=["data", "sales"],
        )
    )
    registry.register(
        ToolSpec(
            name=PURCHASE_ORDERS_TOOL,
            description=TOOL_DESCRIPTIONS[PURCHASE_ORDERS_TOOL],
            args_schema=PurchaseOrdersInput,
            handler=_purchase_orders,
            tags=["data", "purchasing"],
        )
    )
    registry.register(
        ToolSpec(
            name=RECORD_DETAILS_TOOL,
            description=TOOL_DESCRIPTIONS[RECORD_DETAILS_TOOL],
            args_schema=RecordDetailsInput,
            handler=_record_details,
            tags=["data", "detail"],
        )
    )
