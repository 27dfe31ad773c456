from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Reference data


class ReferenceDataIn(ApiModel):
    ref_data_type: str = Field(min_length=1)
    ref_data_value: str = Field(min_length=1)
    description: Optional[str] = None
    editable: bool = True


class ReferenceData(ReferenceDataIn):
    id: int
    effective_from: datetime
    effective_to: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


# Document configuration


class DocumentConfigurationIn(ApiModel):
    footer_id: int
    app_doc_spec_id: int
    code_id: int
    value: str = Field(min_length=1)
    description: Optional[str] = None


class DocumentConfiguration(DocumentConfigurationIn):
    id: int
    effective_from: datetime
    effective_to: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None


# Document requests and their children


class DocumentRequest(ApiModel):
    id: int
    source_system_id: Optional[int] = None
    document_type_id: Optional[int] = None
    document_name_id: Optional[int] = None
    status_id: Optional[int] = None
    created_at: datetime
    last_updated_at: Optional[datetime] = None


class MetadataValue(ApiModel):
    id: int
    request_id: int
    key_id: int
    value: Optional[str] = None
    created_at: Optional[datetime] = None


class Batch(ApiModel):
    id: int
    request_id: int
    batch_name: Optional[str] = None
    status_id: Optional[int] = None
    created_at: datetime
    last_updated_at: Optional[datetime] = None


class ErrorDetail(ApiModel):
    id: int
    batch_id: int
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentContent(ApiModel):
    request_id: int
    content_type: str
    content: str


# Search


class SortSpec(ApiModel):
    property: Optional[str] = None
    direction: Optional[str] = None


class MetadataChip(ApiModel):
    key_id: int
    value: str


class DocumentRequestSearchRequest(ApiModel):
    """Search criteria; every populated filter is ANDed with the others."""

    source_systems: Optional[List[int]] = None
    document_types: Optional[List[int]] = None
    document_names: Optional[List[int]] = None
    document_statuses: Optional[List[int]] = None
    request_ids: Optional[List[int]] = None
    batch_ids: Optional[List[int]] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    metadata_chips: Optional[List[MetadataChip]] = None
    sorts: Optional[List[SortSpec]] = None


class Links(ApiModel):
    self_link: str = Field(alias="self")
    first: str
    previous: Optional[str] = None
    next: Optional[str] = None
    last: str


class DocumentRequestSearchResponse(ApiModel):
    content: List[DocumentRequest]
    page: int
    size: int
    total_elements: int
    total_pages: int
    first: bool
    last: bool
    sorts: Optional[List[SortSpec]] = None
    links: Links


class StatusCount(ApiModel):
    status_id: Optional[int] = None
    status_name: Optional[str] = None
    status_description: Optional[str] = None
    count: int


class DocumentRequestSummary(ApiModel):
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    total_count: int
    status_counts: List[StatusCount]


class ErrorResponse(ApiModel):
    timestamp: datetime
    status: int
    error: str
    error_description: str
    message: str
    path: str
