from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)


class FindingDTO(_CamelModel):
    severity: str
    code: str
    message: str
    file_path: Optional[str] = None
    line: Optional[int] = None
    id: Optional[str] = None
    rule_source: Optional[str] = None
    rule: Optional[str] = None


class CheckReportDTO(_CamelModel):
    valid: bool
    errors: int
    warnings: int
    findings: List[FindingDTO] = []


class TraceNodeDTO(_CamelModel):
    id: str
    file_path: str
    line: int


class TraceChainDTO(_CamelModel):
    query_id: str
    requirement: Optional[TraceNodeDTO] = None
    acs: List[TraceNodeDTO] = []
    design_components: List[TraceNodeDTO] = []
    implementations: List[TraceNodeDTO] = []
    tests: List[TraceNodeDTO] = []
    properties: List[TraceNodeDTO] = []


class TraceReportDTO(_CamelModel):
    chains: List[TraceChainDTO] = []
    not_found: List[str] = []

    def to_json(self) -> str:
        # A missing requirement is reported as an explicit null.
        return self.model_dump_json(by_alias=True, indent=2)


class ContentSectionDTO(_CamelModel):
    type: str
    file_path: str
    start_line: int
    end_line: int
    content: str
    priority: int


class ContentReportDTO(_CamelModel):
    query: str
    sections: List[ContentSectionDTO] = []
    estimated_tokens: int
    files_included: int
    truncated: Optional[bool] = None
    truncation_message: Optional[str] = None


class IndexStatusDTO(_CamelModel):
    ready: bool
    id_count: int

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)
