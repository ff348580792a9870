"""Schema normalizer for converting raw spreadsheet rows to policy records.

Column resolution is alias-table driven: every canonical field has an ordered
list of accepted headers, matched case-insensitively with surrounding
whitespace ignored. Value normalization is deterministic and rule-based.
"""

import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from insurepulse.core.config import PipelineSettings, settings
from insurepulse.schemas.records import DefectReason, InsuranceType, PolicyRecord, PolicyStatus
from insurepulse.services.normalization.constants import (
    COUNTRY_NAME_TO_CODE,
    CURRENCY_CODE_PATTERN,
    CURRENCY_SYMBOL_TO_ISO,
    EMPTY_MARKERS,
    EXCEL_EPOCH,
    EXCEL_MAX_SERIAL,
    FIELD_ALIASES,
    INSURANCE_TYPE_SYNONYMS,
    ISO_DATE_PATTERN,
    LINE_OF_BUSINESS_SYNONYMS,
    REQUIRED_FIELDS,
    STATUS_SYNONYMS,
)
from insurepulse.utils.exceptions import ConfigurationError, NormalizationDefect
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)

CENTS = Decimal("0.01")

NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

# "12.000,50" style; thousands groups always have three digits
DECIMAL_COMMA_PATTERN = re.compile(r",\d{1,2}$")

# Numeric(18, 2) holds 16 integer digits
MAX_PREMIUM = Decimal(10) ** 16

# Longest first so "US$" is consumed before "$"
_SYMBOLS = sorted(CURRENCY_SYMBOL_TO_ISO, key=len, reverse=True)


def header_key(header: str) -> str:
    """Comparable form of a column header: trimmed, lower-cased, single-spaced."""
    return " ".join(str(header).split()).lower()


def _value_key(value: Any) -> str:
    return " ".join(str(value).replace("_", " ").replace("-", " ").split()).lower()


def is_empty(value: Any) -> bool:
    """Whether a spreadsheet cell carries no usable value."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip().lower() in EMPTY_MARKERS
    return False


class SchemaNormalizer:
    """Normalizes one raw row of unknown column naming into a ``PolicyRecord``.

    Pure with respect to its inputs plus the alias table and pipeline
    settings it was built with.
    """

    def __init__(
        self,
        pipeline_settings: Optional[PipelineSettings] = None,
        field_aliases: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        """Initialize schema normalizer.

        Args:
            pipeline_settings: Default country, currency and date settings
            field_aliases: Canonical field -> ordered header aliases

        Raises:
            ConfigurationError: If the alias table or pipeline settings are unusable
        """
        pipeline = pipeline_settings or settings.pipeline
        pipeline.ensure_valid()

        aliases = FIELD_ALIASES if field_aliases is None else field_aliases
        self._aliases = self._build_alias_index(aliases)

        self.default_country = pipeline.default_country.strip().upper()
        self.reporting_currency = pipeline.reporting_currency.strip().upper()
        self.fx_rates = {code.strip().upper(): Decimal(rate) for code, rate in pipeline.fx_rates.items()}
        self.fallback_date_formats = list(pipeline.fallback_date_formats)

        LOGGER.debug(
            "Initialized SchemaNormalizer",
            extra={
                "fields": list(self._aliases),
                "default_country": self.default_country,
                "reporting_currency": self.reporting_currency,
            },
        )

    @staticmethod
    def _build_alias_index(aliases: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
        if not aliases:
            raise ConfigurationError("Field alias table is empty")

        missing_required = [field for field in REQUIRED_FIELDS if field not in aliases]
        if missing_required:
            raise ConfigurationError(f"Alias table is missing required fields: {missing_required}")

        index: Dict[str, List[str]] = {}
        for field, names in aliases.items():
            keys = [header_key(name) for name in names if str(name).strip()]
            if not keys:
                raise ConfigurationError(f"No aliases configured for field '{field}'")
            index[field] = keys
        return index

    def normalize(self, raw_row: Mapping[str, Any], tenant_id: str) -> PolicyRecord:
        """Normalize one raw row into a canonical policy record.

        Args:
            raw_row: Column header -> cell value, as parsed from the upload
            tenant_id: Tenant the row belongs to

        Returns:
            PolicyRecord: Canonical record with premium in the reporting currency

        Raises:
            NormalizationDefect: If the row cannot be represented canonically
        """
        columns = self._index_columns(raw_row)

        policy_number = self._normalize_policy_number(self._resolve(columns, "policy_number"))
        if not policy_number:
            raise NormalizationDefect(
                DefectReason.MISSING_POLICY_NUMBER,
                "Row has no policy number",
                field="policy_number",
            )

        premium, currency = self.normalize_premium(
            self._resolve(columns, "premium"),
            self._resolve(columns, "currency"),
        )

        effective_date = self.parse_date(self._resolve(columns, "effective_date"))
        expiration_date = self.parse_date(self._resolve(columns, "expiration_date"))
        if effective_date and expiration_date and expiration_date < effective_date:
            raise NormalizationDefect(
                DefectReason.EXPIRATION_BEFORE_EFFECTIVE,
                f"Expiration date {expiration_date} is before effective date {effective_date}",
                field="expiration_date",
                value=expiration_date,
            )

        return PolicyRecord(
            tenant_id=tenant_id,
            policy_number=policy_number,
            premium=premium,
            country=self.normalize_country(self._resolve(columns, "country")),
            insurance_type=self.normalize_insurance_type(self._resolve(columns, "insurance_type")),
            status=self.normalize_status(self._resolve(columns, "status")),
            insured_name=self._clean_text(self._resolve(columns, "insured_name")),
            effective_date=effective_date,
            expiration_date=expiration_date,
            line_of_business=self.normalize_line_of_business(self._resolve(columns, "line_of_business")),
            source_currency=currency,
        )

    def _index_columns(self, raw_row: Mapping[str, Any]) -> Dict[str, Any]:
        # Headers that collapse to the same key keep the first non-empty cell
        columns: Dict[str, Any] = {}
        for header, value in raw_row.items():
            if header is None:
                continue
            key = header_key(header)
            if key not in columns or (is_empty(columns[key]) and not is_empty(value)):
                columns[key] = value
        return columns

    def _resolve(self, columns: Mapping[str, Any], field: str) -> Any:
        for alias in self._aliases.get(field, ()):
            value = columns.get(alias)
            if not is_empty(value):
                return value
        return None

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        if is_empty(value):
            return None
        text = " ".join(str(value).split())
        return text or None

    def _normalize_policy_number(self, value: Any) -> Optional[str]:
        # Spreadsheet numeric cells arrive as floats ("1001.0")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return self._clean_text(value)

    def parse_amount(self, value: Any) -> Tuple[Optional[Decimal], Optional[str]]:
        """Parse a monetary cell into an exact decimal and an optional currency code.

        Args:
            value: Number or text such as "12,000", "SAR 12,000", "$1,200.50", "(500)"

        Returns:
            Tuple of (amount or None when unparsable, ISO code found in the cell or None)
        """
        if is_empty(value) or isinstance(value, bool):
            return None, None
        if isinstance(value, int):
            return Decimal(value), None
        if isinstance(value, Decimal):
            if not value.is_finite():
                return None, None
            return value, None
        if isinstance(value, float):
            if math.isinf(value):
                return None, None
            return Decimal(str(value)), None

        text = str(value).strip()
        negative = text.startswith("(") and text.endswith(")")
        if negative:
            text = text[1:-1]

        currency = None
        for symbol in _SYMBOLS:
            if symbol in text:
                currency = CURRENCY_SYMBOL_TO_ISO[symbol]
                text = text.replace(symbol, "")
                break

        match = CURRENCY_CODE_PATTERN.match(text)
        if match:
            prefix, text, suffix = match.groups()
            code = prefix or suffix
            if code:
                currency = code.upper()

        if DECIMAL_COMMA_PATTERN.search(text.strip()):
            LOGGER.debug(f"Ambiguous decimal comma in amount: {value!r}")
            return None, None

        numeric = re.sub(r"[,\s']", "", text)
        if not NUMERIC_PATTERN.match(numeric):
            LOGGER.debug(f"Failed to parse amount: {value!r}")
            return None, None

        try:
            amount = Decimal(numeric)
        except InvalidOperation:
            return None, None

        return (-amount if negative else amount), currency

    def normalize_premium(self, value: Any, currency_value: Any = None) -> Tuple[Decimal, str]:
        """Normalize a premium cell to the reporting currency.

        Absent or unparsable premiums become zero. Negative premiums,
        premiums too large to store and currencies without an FX rate are
        defects.

        Returns:
            Tuple of (premium in reporting currency, source currency code)

        Raises:
            NormalizationDefect: On a negative or out-of-range premium or an
                unsupported currency
        """
        amount, cell_currency = self.parse_amount(value)
        if amount is None:
            amount, cell_currency = Decimal(0), None

        if amount < 0:
            raise NormalizationDefect(
                DefectReason.NEGATIVE_PREMIUM,
                f"Premium must be non-negative, got {amount}",
                field="premium",
                value=value,
            )

        self._check_premium_range(amount, value)

        column_currency = self._clean_text(currency_value)
        currency = (column_currency or cell_currency or self.reporting_currency).upper()
        if currency == self.reporting_currency:
            return amount, currency

        rate = self.fx_rates.get(currency)
        if rate is None:
            raise NormalizationDefect(
                DefectReason.UNSUPPORTED_CURRENCY,
                f"No exchange rate configured for currency '{currency}'",
                field="currency",
                value=currency,
            )
        converted = (amount * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
        self._check_premium_range(converted, value)
        return converted, currency

    @staticmethod
    def _check_premium_range(amount: Decimal, value: Any) -> None:
        if amount >= MAX_PREMIUM or amount.quantize(CENTS, rounding=ROUND_HALF_UP) >= MAX_PREMIUM:
            raise NormalizationDefect(
                DefectReason.PREMIUM_OUT_OF_RANGE,
                f"Premium {amount} exceeds the storable maximum",
                field="premium",
                value=value,
            )

    def parse_date(self, value: Any) -> Optional[date]:
        """Parse a date cell; anything unparsable is treated as absent.

        ISO-shaped strings are parsed as ISO only. Other strings get one
        fallback pass over the configured formats. Numbers are spreadsheet
        serial days.

        Args:
            value: Date, datetime, serial number or text

        Returns:
            datetime.date or None
        """
        if is_empty(value) or isinstance(value, bool):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, (int, float, Decimal)):
            serial = float(value)
            if math.isinf(serial) or not 1 <= serial <= EXCEL_MAX_SERIAL:
                return None
            return EXCEL_EPOCH + timedelta(days=int(serial))

        text = str(value).strip()

        iso_match = ISO_DATE_PATTERN.match(text)
        if iso_match:
            try:
                return date(*(int(part) for part in iso_match.groups()))
            except ValueError:
                LOGGER.debug(f"Invalid ISO date: {text}")
                return None

        for fmt in self.fallback_date_formats:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue

        LOGGER.debug(f"Failed to parse date value: {text}")
        return None

    def normalize_country(self, value: Any) -> str:
        text = self._clean_text(value)
        if not text:
            return self.default_country

        code = COUNTRY_NAME_TO_CODE.get(text.lower(), text)
        if len(code) != 2 or not code.isalpha():
            raise NormalizationDefect(
                DefectReason.INVALID_COUNTRY,
                f"Unrecognized country '{text}'",
                field="country",
                value=value,
            )
        return code.upper()

    def normalize_insurance_type(self, value: Any) -> InsuranceType:
        if is_empty(value):
            return InsuranceType.CONVENTIONAL

        canonical = INSURANCE_TYPE_SYNONYMS.get(_value_key(value))
        if canonical is None:
            raise NormalizationDefect(
                DefectReason.INVALID_INSURANCE_TYPE,
                f"Unrecognized insurance type '{value}'",
                field="insurance_type",
                value=value,
            )
        return InsuranceType(canonical)

    def normalize_status(self, value: Any) -> PolicyStatus:
        if is_empty(value):
            return PolicyStatus.ACTIVE

        canonical = STATUS_SYNONYMS.get(_value_key(value))
        if canonical is None:
            raise NormalizationDefect(
                DefectReason.INVALID_STATUS,
                f"Unrecognized policy status '{value}'",
                field="status",
                value=value,
            )
        return PolicyStatus(canonical)

    def normalize_line_of_business(self, value: Any) -> Optional[str]:
        text = self._clean_text(value)
        if not text:
            return None
        return LINE_OF_BUSINESS_SYNONYMS.get(text.lower(), text.title())
