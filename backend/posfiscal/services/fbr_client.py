"""
FBR Digital Invoicing API client.

Stateless wrapper over the validate/submit endpoints and the read-only
reference data endpoints. Every client instance is bound to one tenant's
credentials and to the sandbox or production gateway chosen by them.

Calls never raise for network or protocol problems; they return one of
the tagged results below so callers branch on type instead of poking at
free-form response maps:

- Accepted          HTTP 200 and validationResponse.statusCode == "00"
                    (submit also needs an invoiceNumber)
- Rejected          FBR answered but did not accept; retryable unless the
                    token was refused (401/403). business_verdict is set
                    only when FBR judged the document itself (HTTP 200
                    with a failing statusCode, or an errorCode in the body)
- TransportFailure  timeout, DNS, TLS, connection reset; always retryable
- NotConfigured     no active credentials; never retryable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping

import httpx
from flask import current_app

from .fbr_config_service import TenantCredentials
from .fbr_errors import NOT_CONFIGURED_MESSAGE, http_error_code, translate_fbr_error
from .fbr_errors import is_auth_error as is_auth_code


logger = logging.getLogger(__name__)

STATUS_ACCEPTED = "00"

# Gateway throttling or timeouts; never a verdict on the document
THROTTLED_HTTP_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class FbrEndpoints:
    sandbox_base_url: str
    production_base_url: str
    reference_base_url: str
    validate_sandbox: str = "/validateinvoicedata_sb"
    submit_sandbox: str = "/postinvoicedata_sb"
    validate_production: str = "/validateinvoicedata"
    submit_production: str = "/postinvoicedata"
    reference: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "FbrEndpoints":
        return cls(
            sandbox_base_url=config["FBR_SANDBOX_BASE_URL"],
            production_base_url=config["FBR_PRODUCTION_BASE_URL"],
            reference_base_url=config["FBR_REFERENCE_BASE_URL"],
            validate_sandbox=config["FBR_VALIDATE_ENDPOINT_SB"],
            submit_sandbox=config["FBR_POST_ENDPOINT_SB"],
            validate_production=config["FBR_VALIDATE_ENDPOINT_PROD"],
            submit_production=config["FBR_POST_ENDPOINT_PROD"],
            reference=dict(config["FBR_REFERENCE_ENDPOINTS"]),
            timeout=float(config["FBR_HTTP_TIMEOUT"]),
        )


@dataclass(frozen=True)
class Accepted:
    invoice_number: str | None = None
    dated: str | None = None
    payload: dict | None = None

    success: ClassVar[bool] = True
    retryable: ClassVar[bool] = False

    @property
    def error(self) -> None:
        return None


@dataclass(frozen=True)
class Rejected:
    code: str
    message: str
    http_status: int | None = None
    retryable: bool = True
    fbr_message: str | None = None
    payload: Any = None
    business_verdict: bool = False

    success: ClassVar[bool] = False

    @property
    def error(self) -> str:
        """Translated message, followed by FBR's own wording when it sent any."""
        if self.fbr_message and self.fbr_message != self.message:
            return f"{self.message} (FBR: {self.fbr_message})"
        return self.message

    @property
    def is_auth_error(self) -> bool:
        return is_auth_code(self.code)

    @property
    def is_data_rejection(self) -> bool:
        """FBR looked at the document and refused it (as opposed to a gateway fault)."""
        return self.business_verdict and not self.is_auth_error


@dataclass(frozen=True)
class TransportFailure:
    detail: str

    success: ClassVar[bool] = False
    retryable: ClassVar[bool] = True

    @property
    def error(self) -> str:
        return f"FBR API connection failed: {self.detail}"


@dataclass(frozen=True)
class NotConfigured:
    detail: str = NOT_CONFIGURED_MESSAGE

    success: ClassVar[bool] = False
    retryable: ClassVar[bool] = False

    @property
    def error(self) -> str:
        return self.detail


AuthorityResult = Accepted | Rejected | TransportFailure | NotConfigured


@dataclass(frozen=True)
class ReferenceResult:
    success: bool
    data: Any = None
    error: str | None = None
    http_status: int | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "data": self.data, "error": self.error}


def _status_code(validation: dict) -> str:
    raw = validation.get("statusCode")
    if raw is None:
        return ""
    return str(raw).strip().zfill(2)


def _extract_error(body: Any) -> tuple[str | None, str | None]:
    """(errorCode, error) from validationResponse, falling back to the first failing item."""
    if not isinstance(body, dict):
        return None, None
    validation = body.get("validationResponse") or {}
    if not isinstance(validation, dict):
        return None, None
    code = validation.get("errorCode") or None
    message = validation.get("error") or None
    if code is None:
        for status in validation.get("invoiceStatuses") or []:
            if isinstance(status, dict) and status.get("errorCode"):
                code = status.get("errorCode")
                message = message or status.get("error")
                break
    return (str(code) if code is not None else None), message


class FbrClient:
    def __init__(
        self,
        credentials: TenantCredentials | None,
        endpoints: FbrEndpoints,
        *,
        transport: httpx.BaseTransport | None = None,
    ):
        self.credentials = credentials
        self.endpoints = endpoints
        self.transport = transport

    @classmethod
    def for_tenant(cls, credentials: TenantCredentials | None, *, transport=None) -> "FbrClient":
        return cls(credentials, FbrEndpoints.from_config(current_app.config), transport=transport)

    @property
    def is_configured(self) -> bool:
        return self.credentials is not None and bool(self.credentials.bearer_token)

    @property
    def environment(self) -> str:
        if self.credentials is None or self.credentials.sandbox_mode:
            return "sandbox"
        return "production"

    def _base_url(self) -> str:
        if self.environment == "sandbox":
            return self.endpoints.sandbox_base_url
        return self.endpoints.production_base_url

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.credentials.bearer_token}",
        }

    def _http(self) -> httpx.Client:
        return httpx.Client(timeout=self.endpoints.timeout, transport=self.transport)

    def _post(self, path: str, payload: dict) -> httpx.Response | TransportFailure:
        url = self._base_url() + path
        try:
            with self._http() as http:
                return http.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.warning("FBR call to %s timed out for org %s", path, self.credentials.org_id)
            return TransportFailure(f"timeout ({exc.__class__.__name__})")
        except httpx.HTTPError as exc:
            logger.warning("FBR call to %s failed for org %s: %s", path, self.credentials.org_id, exc)
            return TransportFailure(str(exc) or exc.__class__.__name__)

    def _interpret(self, response: httpx.Response, *, require_invoice_number: bool) -> AuthorityResult:
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = None

        if status in (401, 403):
            code = http_error_code(status)
            return Rejected(
                code=code,
                message=translate_fbr_error(code),
                http_status=status,
                retryable=False,
                payload=body,
            )

        if status != 200:
            fbr_code, raw_message = _extract_error(body)
            code = fbr_code or http_error_code(status)
            return Rejected(
                code=code,
                message=translate_fbr_error(code),
                http_status=status,
                fbr_message=raw_message,
                payload=body,
                business_verdict=fbr_code is not None and status not in THROTTLED_HTTP_STATUSES,
            )

        if not isinstance(body, dict):
            return Rejected(
                code="INVALID_RESPONSE",
                message="FBR Error: Unreadable response from FBR",
                http_status=status,
                payload=response.text,
            )

        validation = body.get("validationResponse") or {}
        if not isinstance(validation, dict):
            validation = {}

        if _status_code(validation) == STATUS_ACCEPTED:
            invoice_number = body.get("invoiceNumber")
            if require_invoice_number and not invoice_number:
                return Rejected(
                    code="MISSING_INVOICE_NUMBER",
                    message="FBR Error: FBR accepted the invoice but returned no invoice number",
                    http_status=status,
                    payload=body,
                )
            return Accepted(
                invoice_number=str(invoice_number) if invoice_number else None,
                dated=body.get("dated"),
                payload=body,
            )

        code, raw_message = _extract_error(body)
        code = code or "UNKNOWN"
        return Rejected(
            code=code,
            message=translate_fbr_error(code),
            http_status=status,
            fbr_message=raw_message,
            payload=body,
            business_verdict=True,
        )

    def validate(self, payload: dict) -> AuthorityResult:
        """Dry-run the document against FBR's validation rules."""
        if not self.is_configured:
            return NotConfigured()
        path = self.endpoints.validate_sandbox if self.environment == "sandbox" else self.endpoints.validate_production
        response = self._post(path, payload)
        if isinstance(response, TransportFailure):
            return response
        return self._interpret(response, require_invoice_number=False)

    def submit(self, payload: dict) -> AuthorityResult:
        """Post the document; on success FBR issues the authoritative invoice number."""
        if not self.is_configured:
            return NotConfigured()
        path = self.endpoints.submit_sandbox if self.environment == "sandbox" else self.endpoints.submit_production
        response = self._post(path, payload)
        if isinstance(response, TransportFailure):
            return response
        return self._interpret(response, require_invoice_number=True)

    # --- Reference data (UI autocomplete) ---

    def reference_data(self, kind: str, params: dict | None = None) -> ReferenceResult:
        path = self.endpoints.reference.get(kind)
        if path is None:
            return ReferenceResult(success=False, error="Invalid reference data type")
        if not self.is_configured:
            return ReferenceResult(success=False, error=NOT_CONFIGURED_MESSAGE)

        url = self.endpoints.reference_base_url + path
        try:
            with self._http() as http:
                response = http.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("FBR reference lookup %s failed for org %s: %s", kind, self.credentials.org_id, exc)
            return ReferenceResult(success=False, error=f"FBR API connection failed: {exc.__class__.__name__}")

        if response.status_code in (401, 403):
            return ReferenceResult(
                success=False,
                error=translate_fbr_error(http_error_code(response.status_code)),
                http_status=response.status_code,
            )
        if response.status_code != 200:
            return ReferenceResult(
                success=False,
                error="Failed to fetch reference data",
                http_status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError:
            return ReferenceResult(success=False, error="Failed to fetch reference data", http_status=200)
        return ReferenceResult(success=True, data=data, http_status=200)

    def provinces(self) -> ReferenceResult:
        return self.reference_data("provinces")

    def document_types(self) -> ReferenceResult:
        return self.reference_data("document_types")

    def hs_codes(self) -> ReferenceResult:
        return self.reference_data("hs_codes")

    def units_of_measure(self) -> ReferenceResult:
        return self.reference_data("uom")

    def transaction_types(self) -> ReferenceResult:
        return self.reference_data("transaction_types")

    def sro_schedule(self, rate_id: int, date: str, province_code: int) -> ReferenceResult:
        return self.reference_data(
            "sro_schedule",
            params={"rate_id": rate_id, "date": date, "origination_supplier_csv": province_code},
        )

    def test_connection(self) -> dict:
        """Authenticated provinces lookup; proves the token and gateway are usable."""
        result = self.provinces()
        return {
            "success": result.success,
            "environment": self.environment,
            "error": result.error,
        }
