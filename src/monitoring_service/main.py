from __future__ import annotations

import logging
from datetime import datetime
from http import HTTPStatus
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from .batch_service import BatchService
from .configuration import build_search_limits, configure_logging, load_settings
from .database import Database
from .document_configuration_service import DocumentConfigurationService
from .document_request_service import DocumentRequestService
from .exceptions import (
    BusinessValidationError,
    InvalidSearchRequestError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    StorageError,
)
from .models import (
    Batch,
    DocumentConfiguration,
    DocumentConfigurationIn,
    DocumentContent,
    DocumentRequestSearchRequest,
    DocumentRequestSearchResponse,
    DocumentRequestSummary,
    ErrorDetail,
    ErrorResponse,
    MetadataValue,
    ReferenceData,
    ReferenceDataIn,
)
from .reference_data_service import ReferenceDataService
from .search import CriteriaQueryBuilder
from .security import AuthenticationError, JWTAuthenticator, Principal
from .temporal_store import DOCUMENT_CONFIGURATION, REFERENCE_DATA, TemporalRecordStore
from .utils import utc_now

logger = logging.getLogger(__name__)

settings = load_settings()
configure_logging(settings)

app = FastAPI(title=settings.app.title, version=settings.app.version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

API = settings.app.api_prefix

database = Database(Path(settings.database.path))
search_limits = build_search_limits(settings)
authenticator = JWTAuthenticator.from_settings(settings)

reference_data_service = ReferenceDataService(TemporalRecordStore(database, REFERENCE_DATA))
document_configuration_service = DocumentConfigurationService(TemporalRecordStore(database, DOCUMENT_CONFIGURATION))
document_request_service = DocumentRequestService(
    database,
    CriteriaQueryBuilder(search_limits),
    search_path=f"{API}/document-requests/search",
)
batch_service = BatchService(database)

bearer_scheme = HTTPBearer(auto_error=False)


def get_reference_data_service() -> ReferenceDataService:
    return reference_data_service


def get_document_configuration_service() -> DocumentConfigurationService:
    return document_configuration_service


def get_document_request_service() -> DocumentRequestService:
    return document_request_service


def get_batch_service() -> BatchService:
    return batch_service


def get_authenticator() -> JWTAuthenticator:
    return authenticator


# Error mapping


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    description: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        timestamp=utc_now(),
        status=status_code,
        error=error,
        error_description=description,
        message=message,
        path=request.url.path,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True), headers=headers)


@app.exception_handler(ResourceNotFoundError)
async def handle_not_found(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    logger.warning("Resource not found: %s", exc)
    return _error_response(request, 404, "Not Found", "The requested resource was not found", str(exc))


@app.exception_handler(ResourceAlreadyExistsError)
async def handle_already_exists(request: Request, exc: ResourceAlreadyExistsError) -> JSONResponse:
    logger.warning("Resource already exists: %s", exc)
    return _error_response(request, 409, "Conflict", "The resource already exists", str(exc))


@app.exception_handler(InvalidSearchRequestError)
async def handle_invalid_search(request: Request, exc: InvalidSearchRequestError) -> JSONResponse:
    logger.warning("Invalid search request: %s", exc)
    return _error_response(request, 400, "Bad Request", "Invalid search request", str(exc))


@app.exception_handler(BusinessValidationError)
async def handle_business_validation(request: Request, exc: BusinessValidationError) -> JSONResponse:
    logger.warning("Business validation failed: %s", exc)
    return _error_response(request, 400, "Bad Request", "Business validation failed", str(exc))


@app.exception_handler(StorageError)
async def handle_storage_error(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Database error occurred", exc_info=exc)
    return _error_response(
        request, 500, "Database Error", "An error occurred while accessing the database", str(exc)
    )


HTTP_ERROR_DESCRIPTIONS = {
    401: "Authentication is required to access this resource",
    403: "Access to this resource is denied",
    404: "The requested resource was not found",
    405: "The request method is not supported for this resource",
}


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    phrase = HTTPStatus(exc.status_code).phrase
    return _error_response(
        request,
        exc.status_code,
        phrase,
        HTTP_ERROR_DESCRIPTIONS.get(exc.status_code, phrase),
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    logger.warning("Request validation failed: %s", problems)
    return _error_response(request, 422, "Unprocessable Entity", "Request validation failed", problems)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unexpected error occurred", exc_info=exc)
    return _error_response(request, 500, "Internal Server Error", "An unexpected error occurred", str(exc))


# Authentication


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    jwt_authenticator: JWTAuthenticator = Depends(get_authenticator),
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return jwt_authenticator.authenticate(credentials.credentials)
    except AuthenticationError as exc:
        raise HTTPException(status_code=401, detail=str(exc), headers={"WWW-Authenticate": "Bearer"}) from exc


def require_writer(principal: Principal = Depends(get_principal)) -> Principal:
    write_roles = list(settings.security.write_roles)
    if not principal.has_any_role(write_roles):
        logger.warning("Access denied for %s: requires one of %s", principal.subject, write_roles)
        raise HTTPException(status_code=403, detail=f"Requires one of roles: {', '.join(write_roles)}")
    return principal


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok", "database": "up" if database.check_connection() else "down"}


# Reference data


@app.post(f"{API}/reference-data", response_model=ReferenceData, status_code=201)
def create_reference_data(
    payload: ReferenceDataIn,
    _: Principal = Depends(require_writer),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> ReferenceData:
    return service.create(payload)


@app.put(f"{API}/reference-data/{{record_id}}", response_model=ReferenceData)
def update_reference_data(
    record_id: int,
    payload: ReferenceDataIn,
    _: Principal = Depends(require_writer),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> ReferenceData:
    return service.update(record_id, payload)


@app.delete(f"{API}/reference-data/{{record_id}}", status_code=204)
def delete_reference_data(
    record_id: int,
    _: Principal = Depends(require_writer),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> Response:
    service.delete(record_id)
    return Response(status_code=204)


@app.get(f"{API}/reference-data/type/{{ref_data_type}}", response_model=List[ReferenceData])
def list_reference_data_by_type(
    ref_data_type: str,
    historic: bool = False,
    _: Principal = Depends(get_principal),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> List[ReferenceData]:
    return service.list_by_type(ref_data_type, historic)


@app.get(f"{API}/reference-data/{{record_id}}", response_model=ReferenceData)
def get_reference_data(
    record_id: int,
    _: Principal = Depends(get_principal),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> ReferenceData:
    return service.get_by_id(record_id)


@app.get(f"{API}/reference-data", response_model=List[ReferenceData])
def list_reference_data(
    historic: bool = False,
    _: Principal = Depends(get_principal),
    service: ReferenceDataService = Depends(get_reference_data_service),
) -> List[ReferenceData]:
    return service.list_all(historic)


# Document configuration


@app.post(f"{API}/document-configurations", response_model=DocumentConfiguration, status_code=201)
def create_document_configuration(
    payload: DocumentConfigurationIn,
    _: Principal = Depends(require_writer),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> DocumentConfiguration:
    return service.create(payload)


@app.get(f"{API}/document-configurations/search", response_model=List[DocumentConfiguration])
def search_document_configurations(
    footer: str,
    document_name: str = Query(..., alias="documentName"),
    code: str = Query(...),
    historic: bool = False,
    _: Principal = Depends(get_principal),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> List[DocumentConfiguration]:
    return service.search(footer, document_name, code, historic)


@app.put(f"{API}/document-configurations/{{record_id}}", response_model=DocumentConfiguration)
def update_document_configuration(
    record_id: int,
    payload: DocumentConfigurationIn,
    _: Principal = Depends(require_writer),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> DocumentConfiguration:
    return service.update(record_id, payload)


@app.delete(f"{API}/document-configurations/{{record_id}}", status_code=204)
def delete_document_configuration(
    record_id: int,
    _: Principal = Depends(require_writer),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> Response:
    service.delete(record_id)
    return Response(status_code=204)


@app.get(f"{API}/document-configurations/{{record_id}}", response_model=DocumentConfiguration)
def get_document_configuration(
    record_id: int,
    _: Principal = Depends(get_principal),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> DocumentConfiguration:
    return service.get_by_id(record_id)


@app.get(f"{API}/document-configurations", response_model=List[DocumentConfiguration])
def list_document_configurations(
    historic: bool = False,
    _: Principal = Depends(get_principal),
    service: DocumentConfigurationService = Depends(get_document_configuration_service),
) -> List[DocumentConfiguration]:
    return service.list_all(historic)


# Document requests


@app.post(f"{API}/document-requests/search", response_model=DocumentRequestSearchResponse)
def search_document_requests(
    criteria: Optional[DocumentRequestSearchRequest] = Body(None),
    page: int = 1,
    size: int = search_limits.default_page_size,
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> DocumentRequestSearchResponse:
    return service.search(criteria or DocumentRequestSearchRequest(), page, size)


@app.get(f"{API}/document-requests/summary", response_model=DocumentRequestSummary)
def document_request_summary(
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> DocumentRequestSummary:
    return service.get_summary(from_date, to_date)


@app.get(f"{API}/document-requests/{{request_id}}/metadata", response_model=List[MetadataValue])
def document_request_metadata(
    request_id: int,
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> List[MetadataValue]:
    return service.get_metadata(request_id)


@app.get(f"{API}/document-requests/{{request_id}}/json-content", response_model=DocumentContent)
def document_request_json_content(
    request_id: int,
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> DocumentContent:
    return service.get_json_content(request_id)


@app.get(f"{API}/document-requests/{{request_id}}/xml-content", response_model=DocumentContent)
def document_request_xml_content(
    request_id: int,
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> DocumentContent:
    return service.get_xml_content(request_id)


@app.get(f"{API}/document-requests/{{request_id}}/batches", response_model=List[Batch])
def document_request_batches(
    request_id: int,
    _: Principal = Depends(get_principal),
    service: DocumentRequestService = Depends(get_document_request_service),
) -> List[Batch]:
    return service.get_batches(request_id)


# Batches


@app.get(f"{API}/batches/{{batch_id}}/errors", response_model=List[ErrorDetail])
def batch_errors(
    batch_id: int,
    _: Principal = Depends(get_principal),
    service: BatchService = Depends(get_batch_service),
) -> List[ErrorDetail]:
    return service.get_errors(batch_id)
