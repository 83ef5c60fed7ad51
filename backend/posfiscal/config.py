# backend/posfiscal/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posfiscal.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Service token for the /api/fbr surface (called by the sales subsystem and ops tooling)
    INTERNAL_API_TOKEN = os.environ.get("INTERNAL_API_TOKEN")

    # Fernet key for bearer tokens at rest; derived from SECRET_KEY when unset
    FBR_TOKEN_ENCRYPTION_KEY = os.environ.get("FBR_TOKEN_ENCRYPTION_KEY")

    # FBR Digital Invoicing gateway
    FBR_SANDBOX_BASE_URL = os.environ.get("FBR_SANDBOX_BASE_URL", "https://gw.fbr.gov.pk/di_data/v1/di")
    FBR_PRODUCTION_BASE_URL = os.environ.get("FBR_PRODUCTION_BASE_URL", "https://gw.fbr.gov.pk/di_data/v1/di")
    FBR_REFERENCE_BASE_URL = os.environ.get("FBR_REFERENCE_BASE_URL", "https://gw.fbr.gov.pk/pdi/v1")

    FBR_VALIDATE_ENDPOINT_SB = "/validateinvoicedata_sb"
    FBR_POST_ENDPOINT_SB = "/postinvoicedata_sb"
    FBR_VALIDATE_ENDPOINT_PROD = "/validateinvoicedata"
    FBR_POST_ENDPOINT_PROD = "/postinvoicedata"

    FBR_REFERENCE_ENDPOINTS = {
        "provinces": "/provinces",
        "document_types": "/doctypecode",
        "hs_codes": "/itemdesccode",
        "uom": "/uom",
        "transaction_types": "/transtypecode",
        "sro_schedule": "/SroSchedule",
    }

    FBR_HTTP_TIMEOUT = float(os.environ.get("FBR_HTTP_TIMEOUT", "30"))
    FBR_MAX_RETRIES = int(os.environ.get("FBR_MAX_RETRIES", "5"))
    FBR_QUEUE_BATCH_SIZE = int(os.environ.get("FBR_QUEUE_BATCH_SIZE", "10"))
    FBR_PROCESSING_STALE_MINUTES = int(os.environ.get("FBR_PROCESSING_STALE_MINUTES", "15"))

    # Allowed drift between invoice item totals and the recorded sale total, per item
    FBR_RECONCILE_TOLERANCE_CENTS = 1
