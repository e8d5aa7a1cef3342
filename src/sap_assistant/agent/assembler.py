"""Maps tool outputs onto the fixed response payload shapes."""

from __future__ import annotations

from typing import Any

from sap_assistant.agent.definitions import DefinitionAnswer
from sap_assistant.retrieval.executor import DetailResult, RetrievalResult
from sap_assistant.types import (
    DetailPayload,
    FormRequest,
    FormTriggerPayload,
    TablePayload,
    TextPayload,
    TextReply,
)

Payload = TextPayload | TablePayload | DetailPayload | FormTriggerPayload


class ResponseAssembler:
    """Pure structural transformation; columns keep the tool's declared order."""

    def assemble(self, output: Any) -> Payload:
        match output:
            case TextReply(content=content):
                return TextPayload(content=content)
            case DefinitionAnswer(content=content):
                return TextPayload(content=content)
            case RetrievalResult(columns=columns, records=records):
                return TablePayload(
                    columns=[column.header for column in columns],
                    rows=[
                        {column.header: record.get(column.field) for column in columns}
                        for record in records
                    ],
                )
            case DetailResult(columns=columns, record=record):
                return DetailPayload(
                    fields={column.header: record.get(column.field) for column in columns}
                )
            case FormRequest(form=form):
                return FormTriggerPayload(form=form)
        raise TypeError(f"Cannot assemble a response from {type(output).__name__}")
