# app/services/bulk_import.py
import csv
import io
import logging
import re
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.decorator import Conflict, DBException, ValidationFailed
from app.models.course import CREDIT_TYPES
from app.models.user import User, UserLicense
from app.schemas.bulk_import import (
    CourseImportResponse,
    ImportedCourse,
    ImportRowError,
    UserImportResponse,
)
from app.schemas.course import CourseCreate
from app.services.course import CourseService
from app.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
DEFAULT_ONLINE_PRICE = Decimal("15")

LICENSE_COLUMNS = {
    "ea_otrp_license": "EA",
    "cfp_license": "CFP",
    "cpa_license": "CPA",
    "erpa_license": "ERPA",
    "cdfa_license": "CDFA",
}

STATE_CODES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}

Row = Dict[str, str]


# ==================== CSV helpers ====================


def normalize_header(header: Optional[str]) -> str:
    """'Online Price', 'Online_Price' and 'online price' all become 'online_price'."""
    return re.sub(r"[\s_]+", "_", (header or "").strip().lower())


def parse_csv(content: bytes) -> List[Tuple[int, Row]]:
    """Rows keyed by normalized header, each with its line number in the file."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationFailed("CSV file must be UTF-8 encoded")

    rows: List[Tuple[int, Row]] = []
    try:
        reader = csv.DictReader(io.StringIO(text))
        for raw in reader:
            row = {
                normalize_header(key): (value or "").strip()
                for key, value in raw.items()
                if key is not None
            }
            if any(row.values()):
                rows.append((reader.line_num, row))
    except csv.Error as e:
        raise ValidationFailed(f"CSV parsing error: {e}")

    if not rows:
        raise ValidationFailed("No rows found in the CSV file")
    return rows


def first_value(row: Row, keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        if row.get(key):
            return row[key]
    return None


def positive_amount(row: Row, keys: Iterable[str], label: str) -> Optional[Decimal]:
    """A price or credit amount; blank and zero mean 'not offered'."""
    value = first_value(row, keys)
    if value is None:
        return None
    try:
        amount = Decimal(value.replace("$", "").replace(",", ""))
        if not amount.is_finite():
            raise InvalidOperation
        return amount if amount > 0 else None
    except InvalidOperation:
        raise ValidationFailed(f"Invalid {label}: {value}")


def extract_states(value: Optional[str]) -> List[str]:
    """Two-letter codes from 'TX|CA', 'Texas, California' or 'All|TX'."""
    cleaned = re.sub(r"\bAll\|?", "", value or "")
    parts = cleaned.split("|") if "|" in cleaned else cleaned.split(",")

    codes: List[str] = []
    for part in parts:
        name = part.strip().lower()
        if not name:
            continue
        code = name.upper() if len(name) == 2 else STATE_CODES.get(name)
        if not code:
            logger.warning(f"Unknown state name: {part.strip()}")
            continue
        if code not in codes:
            codes.append(code)
    return codes


def _error_message(error: Exception) -> str:
    if isinstance(error, DBException):
        return error.message
    return f"Database error: {type(error).__name__}"


class BulkImportService:
    """
    Admin spreadsheet imports. Every row is handled on its own: a bad row
    is reported with its line number and the rest of the file still loads.
    """

    def __init__(self, db: Session):
        self.db = db

    # ==================== Users ====================

    def import_users(
        self, content: bytes, provider: IdentityProvider
    ) -> UserImportResponse:
        rows = parse_csv(content)
        result = UserImportResponse(total=len(rows))

        for row_number, row in rows:
            email = (row.get("email") or "").lower()
            try:
                self._import_user(row, email, provider)
                result.created += 1
            except (DBException, SQLAlchemyError) as e:
                self.db.rollback()
                message = _error_message(e)
                logger.warning(f"User import row {row_number} ({email or '-'}): {message}")
                result.errors.append(
                    ImportRowError(row=row_number, key=email or None, error=message)
                )

        logger.info(
            f"User import: {result.created}/{result.total} created, {len(result.errors)} failed"
        )
        return result

    def _import_user(self, row: Row, email: str, provider: IdentityProvider) -> User:
        if not email or "@" not in email:
            raise ValidationFailed("Valid email is required")

        password = row.get("password") or ""
        if not password:
            password = secrets.token_urlsafe(12)
        elif len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )

        exists = self.db.query(User.id).filter(func.lower(User.email) == email).first()
        if exists:
            raise Conflict("A user with this email already exists")

        name = " ".join(p for p in (row.get("first_name"), row.get("last_name")) if p)
        role = "admin" if (row.get("role") or "").lower() == "admin" else "user"

        account = provider.create_user(email, password, name or None)

        user = User(id=account.id, email=email, name=name or None, role=role)
        user.licenses = [
            UserLicense(license_type=license_type, license_number=row[column])
            for column, license_type in LICENSE_COLUMNS.items()
            if row.get(column)
        ]
        self.db.add(user)
        try:
            self.db.commit()
        except SQLAlchemyError:
            logger.error(
                f"Account {account.id} for {email} exists in the identity provider "
                f"but could not be saved locally",
                exc_info=True,
            )
            raise

        logger.info(
            f"Imported user {email} ({user.id}) with {len(user.licenses)} license(s)"
        )
        return user

    # ==================== Courses ====================

    def import_courses(self, content: bytes) -> CourseImportResponse:
        rows = parse_csv(content)
        result = CourseImportResponse(total=len(rows))
        service = CourseService(self.db)

        for row_number, row in rows:
            sku = None
            try:
                course_in = self._course_from_row(row, row_number)
                sku = course_in.sku
                course = service.create_course(course_in)
            except (DBException, SQLAlchemyError) as e:
                self.db.rollback()
                message = _error_message(e)
                logger.warning(f"Course import row {row_number} ({sku or '-'}): {message}")
                result.errors.append(ImportRowError(row=row_number, key=sku, error=message))
                continue

            result.imported += 1
            result.courses.append(
                ImportedCourse(id=course.id, sku=course.sku, title=course.title)
            )

        logger.info(
            f"Course import: {result.imported}/{result.total} imported, {len(result.errors)} failed"
        )
        return result

    def _course_from_row(self, row: Row, row_number: int) -> CourseCreate:
        title = first_value(row, ("title", "course_title"))
        if not title or len(title) > 255:
            raise ValidationFailed("Missing or invalid title")

        sku = first_value(row, ("sku", "course_sku", "internal_sku_n"))
        if not sku:
            sku = f"BH-{int(time.time() * 1000)}-{row_number}"
            logger.info(f"Course import row {row_number}: no SKU, generated {sku}")

        online = positive_amount(
            row, ("online_price", "price_online"), "online price"
        )
        formats = [{"format": "online", "price": online or DEFAULT_ONLINE_PRICE}]
        for course_format in ("hardcopy", "video"):
            price = positive_amount(
                row,
                (f"{course_format}_price", f"price_{course_format}"),
                f"{course_format} price",
            )
            if price:
                formats.append({"format": course_format, "price": price})

        credits = []
        for credit_type in CREDIT_TYPES:
            key = credit_type.lower()
            amount = positive_amount(row, (f"{key}_credits",), f"{credit_type} credits")
            if amount:
                credits.append(
                    {
                        "credit_type": credit_type,
                        "amount": amount,
                        "course_number": first_value(
                            row, (f"{key}_course_number", f"{key}_subject")
                        ),
                    }
                )

        states = extract_states(
            first_value(row, ("states", "state_approvals", "state_codes"))
        )

        try:
            return CourseCreate(
                sku=sku[:50],
                title=title,
                description=first_value(row, ("description", "course_description")),
                author=first_value(row, ("author", "instructor")),
                main_subject=first_value(
                    row, ("main_subject", "subject", "category")
                ),
                table_of_contents_url=first_value(
                    row, ("table_of_contents_url", "toc_url")
                ),
                course_content_url=first_value(
                    row, ("course_content_url", "content_url")
                ),
                formats=formats,
                credits=credits,
                states=[{"state_code": code} for code in states],
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise ValidationFailed(f"{field}: {first['msg']}")
