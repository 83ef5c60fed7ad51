"""FBR error code translation (total: never raises)."""

from __future__ import annotations


FBR_ERROR_MESSAGES = {
    "0001": "FBR Error: Your business is not registered for sales tax. Please check your NTN in the settings.",
    "0002": "FBR Error: The customer's NTN or CNIC is invalid. Please use a valid 13-digit CNIC or 7/9-digit NTN.",
    "0021": "FBR Error: The 'Value of Sales' for an item is missing. Please ensure the product has a valid price.",
    "0052": "FBR Error: The HS Code for a product is incorrect. Please update it in the product settings.",
    "0053": "FBR Error: Invalid invoice date format. Please use YYYY-MM-DD format.",
    "0054": "FBR Error: Invalid quantity value. Please enter a valid numeric quantity.",
    "0055": "FBR Error: Invalid tax rate. Please check the tax rate configuration.",
    "0056": "FBR Error: Missing required field. Please check all required fields are filled.",
    "0057": "FBR Error: Invalid province code. Please select a valid province.",
    "0058": "FBR Error: Invalid unit of measure. Please select a valid UOM.",
    "0059": "FBR Error: Invalid scenario ID. Please check the sale type configuration.",
    "0060": "FBR Error: Duplicate invoice reference number. Please use a unique reference number.",
}

# Pseudo-codes for HTTP statuses that mean the bearer token is wrong, expired or lacks access
AUTH_ERROR_CODES = {"HTTP401", "HTTP403"}

AUTH_ERROR_MESSAGE = (
    "FBR Error: Authentication failed. Please check the bearer token in the FBR settings."
)
NOT_CONFIGURED_MESSAGE = "FBR not configured for this tenant"


def normalize_error_code(code) -> str:
    """
    Canonical string form of an FBR code.

    Integers below 1000 are zero-padded to FBR's four-digit form (52 -> "0052").
    """
    if code is None:
        return "UNKNOWN"
    if isinstance(code, bool):
        return str(code)
    if isinstance(code, int):
        return f"{code:04d}" if 0 <= code < 1000 else str(code)
    text = str(code).strip()
    if not text:
        return "UNKNOWN"
    if text.isdigit() and len(text) < 4:
        return text.zfill(4)
    return text


def http_error_code(status: int) -> str:
    """Pseudo-code for an HTTP failure that carried no FBR error code."""
    return f"HTTP{status}"


def is_auth_error(code) -> bool:
    return normalize_error_code(code) in AUTH_ERROR_CODES


def translate_fbr_error(code) -> str:
    """Map an FBR error code to a user-facing message."""
    try:
        normalized = normalize_error_code(code)
    except Exception:  # arbitrary objects with broken __str__
        normalized = "UNKNOWN"
    if normalized in AUTH_ERROR_CODES:
        return AUTH_ERROR_MESSAGE
    return FBR_ERROR_MESSAGES.get(normalized, f"FBR Error: {normalized}")
