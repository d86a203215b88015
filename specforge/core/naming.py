"""Name derivation helpers for entities, resources and metadata headers."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def singularize(name: str) -> str:
    """Naive English singular of a lower-cased table name."""
    lower = name.lower()
    if lower.endswith("ies"):
        return lower[:-3] + "y"
    if lower.endswith(("ses", "xes", "zes", "ches", "shes", "oes")):
        return lower[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return lower[:-1]
    return lower


def pascal_case(name: str) -> str:
    """``employee_salary_view`` -> ``EmployeeSalaryView``."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def to_model_name(table_name: str) -> str:
    """``employees`` -> ``Employee``, ``user_roles`` -> ``UserRole``."""
    return pascal_case(singularize(table_name))


def to_view_model_name(view_name: str) -> str:
    """``employee_salary_view`` -> ``EmployeeSalaryView``."""
    return pascal_case(view_name.lower())


def to_resource_name(source_name: str) -> str:
    """REST resource slug: ``employee_salary_view`` -> ``employee-salary-view``."""
    return source_name.lower().replace("_", "-")


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", name).lower()


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def header_name(category: str, field: str) -> str:
    """Request header carrying one metadata field.

    ``("sso", "authenticated")`` -> ``X-Sso-Authenticated``;
    ``("roles", "roleLevel")`` -> ``X-Roles-Role-Level``.
    """
    words = camel_to_snake(field).split("_")
    suffix = "-".join(w[:1].upper() + w[1:] for w in words if w)
    return f"X-{category[:1].upper()}{category[1:]}-{suffix}"
