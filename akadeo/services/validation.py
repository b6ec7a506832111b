"""Input validation for the account flows.

Each validator returns ``Ok(cleaned_value)`` or ``Err(AppError)`` naming the
offending field, so the first failure can be surfaced as-is.
"""

import re
from datetime import UTC, datetime
from typing import Any

from email_validator import EmailNotValidError, validate_email

from akadeo.errors import AppError, Err, Ok, Result

MAX_EMAIL_LENGTH = 320
MAX_NAME_LENGTH = 255
MIN_PASSWORD_LENGTH = 12
MAX_GOAL_LENGTH = 2000

_CODE_PATTERN = re.compile(r"^\d{6}$")

GRADE_LEVELS = frozenset({"k5", "68", "912", "higher_ed", "other"})
STUDENT_COUNT_RANGES = frozenset({"under_50", "50_150", "150_500", "over_500"})

# ISO 3166-1 alpha-2
COUNTRY_CODES = frozenset(
    """
    AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI BJ
    BL BM BN BO BQ BR BS BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN CO CR
    CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES ET FI FJ FK FM FO FR
    GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM HN HR HT HU
    ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN KP KR KW KY KZ
    LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK ML MM MN MO MP MQ
    MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP NR NU NZ OM PA PE PF
    PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW SA SB SC SD SE SG SH SI
    SJ SK SL SM SN SO SR SS ST SV SX SY SZ TC TD TF TG TH TJ TK TL TM TN TO TR
    TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI VN VU WF WS YE YT ZA ZM ZW
    """.split()
)


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_email_address(value: Any) -> Result[str]:
    """Check address syntax and return the normalized (lowercase) email."""
    email = normalize_email(value)
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return Err(AppError.validation("Enter a valid email address.", "E_INVALID_EMAIL", "email"))
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return Err(AppError.validation("Enter a valid email address.", "E_INVALID_EMAIL", "email"))
    return Ok(email)


def validate_full_name(value: Any) -> Result[str]:
    full_name = _as_text(value)
    if not 2 <= len(full_name) <= MAX_NAME_LENGTH:
        return Err(AppError.validation("Enter your full name.", "E_INVALID_FULL_NAME", "fullName"))
    return Ok(full_name)


def validate_institution(value: Any) -> Result[str | None]:
    institution = _as_text(value)
    if len(institution) > MAX_NAME_LENGTH:
        return Err(
            AppError.validation(
                "Institution name is too long.", "E_INVALID_INSTITUTION", "institution"
            )
        )
    return Ok(institution or None)


def is_strong_password(password: Any) -> bool:
    """At least 12 characters with upper, lower, digit and symbol classes."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return False
    return (
        any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
        and any(not c.isalnum() for c in password)
    )


def validate_password(value: Any) -> Result[str]:
    if not is_strong_password(value):
        return Err(AppError.validation("Use a stronger password.", "E_WEAK_PASSWORD", "password"))
    return Ok(value)


def validate_verification_code(value: Any) -> Result[str]:
    code = _as_text(value)
    if not _CODE_PATTERN.match(code):
        return Err(
            AppError.validation("Enter the 6 digit code from your email.", "E_INVALID_CODE", "code")
        )
    return Ok(code)


def validate_registration(payload: Any) -> Result[dict[str, Any]]:
    """Validate a registration payload in field order."""
    full_name = validate_full_name(payload.full_name)
    if isinstance(full_name, Err):
        return full_name
    email = validate_email_address(payload.email)
    if isinstance(email, Err):
        return email
    institution = validate_institution(payload.institution)
    if isinstance(institution, Err):
        return institution
    password = validate_password(payload.password)
    if isinstance(password, Err):
        return password
    return Ok(
        {
            "full_name": full_name.value,
            "email": email.value,
            "institution": institution.value,
            "password": password.value,
        }
    )


def validate_setup(payload: Any, now: datetime | None = None) -> Result[dict[str, Any]]:
    """Validate the onboarding form and return the columns to store."""
    subject = _as_text(payload.subject)
    if not 2 <= len(subject) <= MAX_NAME_LENGTH:
        return Err(AppError.validation("Tell us what you teach.", "E_INVALID_SUBJECT", "subject"))

    grade_levels = payload.grade_levels
    if (
        not isinstance(grade_levels, list)
        or not grade_levels
        or any(not isinstance(level, str) or level not in GRADE_LEVELS for level in grade_levels)
    ):
        return Err(
            AppError.validation(
                "Choose at least one grade level.", "E_INVALID_GRADE_LEVELS", "gradeLevels"
            )
        )

    country = _as_text(payload.country).upper()
    if country not in COUNTRY_CODES:
        return Err(AppError.validation("Choose your country.", "E_INVALID_COUNTRY", "country"))

    if payload.student_count_range not in STUDENT_COUNT_RANGES:
        return Err(
            AppError.validation(
                "Let us know roughly how many students you support.",
                "E_INVALID_STUDENT_COUNT",
                "studentCountRange",
            )
        )

    primary_goal = _as_text(payload.primary_goal)
    if not 10 <= len(primary_goal) <= MAX_GOAL_LENGTH:
        return Err(
            AppError.validation(
                "Tell us your top priority so we can personalise things.",
                "E_INVALID_PRIMARY_GOAL",
                "primaryGoal",
            )
        )

    if payload.consent_ai_processing is not True:
        return Err(
            AppError.validation(
                "Consent to AI processing is required to continue.",
                "E_CONSENT_REQUIRED",
                "consentAiProcessing",
            )
        )

    return Ok(
        {
            "subject": subject,
            # de-duplicated, first occurrence order
            "grade_levels": list(dict.fromkeys(grade_levels)),
            "country": country,
            "student_count_range": payload.student_count_range,
            "primary_goal": primary_goal,
            "consent_ai_processing": True,
            "consented_at": now or datetime.now(UTC),
        }
    )
