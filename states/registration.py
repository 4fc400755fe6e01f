# states/registration.py — шаги мастера регистрации исполнителя (service provider)
import re
from dataclasses import dataclass
from typing import Optional

from config import settings
from utils.validators import (
    CrossFieldRule,
    FieldSpec,
    ValidationResult,
    at_least_one_payment_method,
    date_order,
    required_signatures,
    unique_ranks,
    validate_fields,
)

# Категории, которые исполнитель ранжирует на шаге rankings
PSP_CATEGORIES = ("stamper", "professional", "agent", "mortgage", "trade")
PAYMENT_PACKETS = ("weekly", "bi-weekly", "monthly", "yearly")
TIER_PACKAGES = ("basic", "standard", "advanced")

ZIP_RE = re.compile(r"^\d{5}$")


@dataclass(frozen=True)
class WizardStep:
    """
    Шаг мастера: набор полей, цель сохранения (таблица) и межполевые правила.
    Конфигурация неизменяема и задаётся при сборке.
    """

    key: str
    title: str
    description: str
    target: str
    fields: tuple[FieldSpec, ...]
    rules: tuple[CrossFieldRule, ...] = ()
    terminal: bool = False

    @property
    def required_fields(self) -> list[str]:
        return [f.name for f in self.fields if f.required]

    def validate(self, values: Optional[dict]) -> ValidationResult:
        return validate_fields(self.fields, values, self.rules)


def _service_areas(field_name: str) -> CrossFieldRule:
    """Зоны обслуживания: 5-значный ZIP и радиус 1–500 миль (по умолчанию 25)."""

    def rule(result: ValidationResult) -> None:
        areas = result.values.get(field_name)
        if any(f.field == field_name for f in result.failures) or not isinstance(areas, list):
            return
        cleaned = []
        seen = set()
        for i, area in enumerate(areas):
            if not isinstance(area, dict):
                result.fail(f"{field_name}.{i}", "Service area must be an object")
                continue
            zip_code = str(area.get("zip_code") or "").strip()
            if not ZIP_RE.match(zip_code):
                result.fail(f"{field_name}.{i}.zip_code", "ZIP code must be 5 digits")
                continue
            radius = area.get("radius_miles", 25)
            if isinstance(radius, bool) or not isinstance(radius, int) or not 1 <= radius <= 500:
                result.fail(f"{field_name}.{i}.radius_miles", "Radius must be between 1 and 500 miles")
                continue
            if zip_code in seen:
                continue
            seen.add(zip_code)
            cleaned.append({"zip_code": zip_code, "radius_miles": radius})
        result.values[field_name] = cleaned

    return rule


_DOC_EXTENSIONS = tuple(settings.ALLOWED_DOCUMENT_EXTENSIONS)

IDENTITY = WizardStep(
    key="identity",
    title="Identity Verification",
    description="Upload ID documents",
    target="identity_documents",
    fields=(
        FieldSpec("id_country", "Country", max_length=64),
        FieldSpec("id_state", "State", required=False, max_length=64),
        FieldSpec("id_number", "ID Number", max_length=128),
        FieldSpec(
            "files",
            "ID documents",
            kind="url_list",
            min_items=1,
            max_items=settings.MAX_IDENTITY_FILES,
            extensions=_DOC_EXTENSIONS,
        ),
    ),
)

PERSONAL = WizardStep(
    key="personal",
    title="Personal Information",
    description="Your basic details",
    target="profiles",
    fields=(
        FieldSpec("last_name", "Last name", max_length=128),
        FieldSpec("first_name", "First name", max_length=128),
        FieldSpec("birthday", "Birthday", kind="date"),
        FieldSpec("phone", "Phone", max_length=64),
        FieldSpec("email", "Email", kind="email", max_length=256),
        FieldSpec("mailing_address", "Mailing address", max_length=512),
        FieldSpec("languages", "Languages", kind="list", required=False, default=["English"]),
        FieldSpec("tools_technologies", "Tools & technologies", kind="list", required=False, default=[]),
    ),
)

BUSINESS = WizardStep(
    key="business",
    title="Business Information",
    description="Business details",
    target="business_info",
    fields=(
        FieldSpec("company_name", "Business name", required=False, max_length=256),
        FieldSpec("years_of_experience", "Years of experience", kind="int", required=False, min_value=0, max_value=80),
        FieldSpec("business_address", "Business address", required=False, max_length=512),
        FieldSpec("business_hours", "Business hours", required=False, max_length=256),
        FieldSpec("best_times_to_reach", "Best times to reach", required=False, max_length=256),
        FieldSpec("number_of_employees", "Number of employees", kind="int", required=False, min_value=0, max_value=100000),
        FieldSpec("service_areas", "Service areas", kind="records", required=False, max_items=25, default=[]),
    ),
    rules=(_service_areas("service_areas"),),
)

LICENSES = WizardStep(
    key="licenses",
    title="Licenses & Credentials",
    description="Professional credentials",
    target="licenses_credentials",
    fields=(
        FieldSpec("license_country", "Country", max_length=64),
        FieldSpec("license_state", "State", required=False, max_length=64),
        FieldSpec("license_number", "License number", max_length=128),
        FieldSpec("active_since", "Active since", kind="date", required=False),
        FieldSpec("renewal_date", "Renewal date", kind="date", required=False),
        FieldSpec("expiration_date", "Expiration date", kind="date", required=False),
        FieldSpec(
            "files",
            "License documents",
            kind="url_list",
            required=False,
            max_items=settings.MAX_LICENSE_FILES,
            extensions=_DOC_EXTENSIONS,
            default=[],
        ),
    ),
    rules=(date_order("active_since", "expiration_date"),),
)

INSURANCE = WizardStep(
    key="insurance",
    title="Bonds & Insurance",
    description="Insurance documents",
    target="bonds_insurance",
    fields=(
        FieldSpec(
            "files",
            "Insurance documents",
            kind="url_list",
            required=False,
            max_items=settings.MAX_INSURANCE_FILES,
            extensions=_DOC_EXTENSIONS,
            default=[],
        ),
    ),
)

RANKINGS = WizardStep(
    key="rankings",
    title="Preference Ranking",
    description="Rank your categories",
    target="preference_rankings",
    fields=(FieldSpec("rankings", "Rankings", kind="mapping", required=False, default={}),),
    rules=(unique_ranks("rankings", PSP_CATEGORIES),),
)

PAYMENT = WizardStep(
    key="payment",
    title="Payment Preferences",
    description="Payment settings",
    target="payment_preferences",
    fields=(
        FieldSpec("payment_packet", "Payment packet", required=False, choices=PAYMENT_PACKETS),
        FieldSpec("tier_package", "Tier package", required=False, choices=TIER_PACKAGES),
        FieldSpec(
            "payment_methods",
            "Payment methods",
            kind="list",
            required=False,
            choices=tuple(settings.PAYMENT_METHODS),
        ),
        FieldSpec("payment_terms", "Payment terms", required=False, max_length=2000),
    ),
    rules=(at_least_one_payment_method("payment_methods"),),
)

LEGAL = WizardStep(
    key="legal",
    title="Legal Documents",
    description="Sign agreements",
    target="e_signatures",
    fields=(FieldSpec("signatures", "Signatures", kind="mapping"),),
    rules=(required_signatures("signatures", settings.REQUIRED_SIGNATURES),),
    terminal=True,
)

SERVICE_PROVIDER_STEPS: tuple[WizardStep, ...] = (
    IDENTITY,
    PERSONAL,
    BUSINESS,
    LICENSES,
    INSURANCE,
    RANKINGS,
    PAYMENT,
    LEGAL,
)


def step_index(key: str, steps: tuple[WizardStep, ...] = SERVICE_PROVIDER_STEPS) -> int:
    for i, step in enumerate(steps):
        if step.key == key:
            return i
    raise KeyError(f"Неизвестный шаг регистрации: {key}")
