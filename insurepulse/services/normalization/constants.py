"""Alias tables and value maps for policy row normalization.

Header aliases are listed in priority order: when several alias columns are
present in one row, the first non-empty one wins. Matching ignores case and
surrounding whitespace.
"""

import re
from datetime import date

FIELD_ALIASES = {
    "policy_number": [
        "Policy Number", "policy_number", "PolicyNo", "Policy No", "Policy No.",
        "Policy #", "Policy ID", "Policy",
    ],
    "insured_name": [
        "Insured Name", "insured_name", "InsuredName", "Insured", "Named Insured",
        "Client", "Client Name",
    ],
    "premium": [
        "Premium", "premium", "Gross Premium", "Written Premium", "GWP",
        "Premium Amount",
    ],
    "currency": [
        "Currency", "currency", "Premium Currency", "CCY",
    ],
    "effective_date": [
        "Effective Date", "effective_date", "Inception Date", "Start Date",
        "Effective", "Inception",
    ],
    "expiration_date": [
        "Expiration Date", "expiration_date", "Expiry Date", "End Date",
        "Expiration", "Expiry",
    ],
    "line_of_business": [
        "Line of Business", "line_of_business", "LOB", "Class of Business",
        "Product", "Line",
    ],
    "country": [
        "Country", "country", "Country Code", "Territory",
    ],
    "insurance_type": [
        "Type", "insurance_type", "Insurance Type", "Policy Type", "Structure",
    ],
    "status": [
        "Status", "status", "Policy Status",
    ],
}

REQUIRED_FIELDS = ("policy_number",)

# Cell values treated as empty
EMPTY_MARKERS = {"", "-", "n/a", "na", "none", "null", "nil"}

COUNTRY_NAME_TO_CODE = {
    "bahrain": "BH",
    "kingdom of bahrain": "BH",
    "saudi arabia": "SA",
    "ksa": "SA",
    "kingdom of saudi arabia": "SA",
    "uae": "AE",
    "united arab emirates": "AE",
    "kuwait": "KW",
    "qatar": "QA",
    "oman": "OM",
    "sultanate of oman": "OM",
    "egypt": "EG",
    "jordan": "JO",
}

INSURANCE_TYPE_SYNONYMS = {
    "conventional": "conventional",
    "traditional": "conventional",
    "commercial": "conventional",
    "takaful": "takaful",
    "islamic": "takaful",
    "sharia": "takaful",
    "shariah": "takaful",
    "sharia compliant": "takaful",
    "family takaful": "takaful",
    "general takaful": "takaful",
    "retakaful": "takaful",
}

STATUS_SYNONYMS = {
    "active": "active",
    "in force": "active",
    "inforce": "active",
    "bound": "active",
    "live": "active",
    "renewed": "active",
    "expired": "expired",
    "lapsed": "expired",
    "matured": "expired",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "terminated": "cancelled",
    "void": "cancelled",
}

LINE_OF_BUSINESS_SYNONYMS = {
    "property": "Property",
    "fire": "Property",
    "fire & allied": "Property",
    "property damage": "Property",
    "motor": "Motor",
    "auto": "Motor",
    "automobile": "Motor",
    "vehicle": "Motor",
    "health": "Health",
    "medical": "Health",
    "casualty": "Casualty",
    "liability": "Casualty",
    "general liability": "Casualty",
    "marine": "Marine",
    "cargo": "Marine",
    "marine cargo": "Marine",
    "marine hull": "Marine",
    "engineering": "Engineering",
    "car": "Engineering",
    "life": "Life",
    "family": "Life",
    "energy": "Energy",
    "aviation": "Aviation",
}

CURRENCY_SYMBOL_TO_ISO = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "﷼": "SAR",
}

# "SAR 12,000", "12,000 BHD", "USD12000"
CURRENCY_CODE_PATTERN = re.compile(r"^\s*([A-Za-z]{3})?\s*(.*?)\s*([A-Za-z]{3})?\s*$")

ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ][0-9:.+\-Z]*)?$")

# Day zero of the 1900 spreadsheet date system (absorbs the phantom 1900-02-29)
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_MAX_SERIAL = 2958465
