"""Marketing attribution fields shared by visitors, sessions and customers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy import func


class TrackingInputError(ValueError):
    """The request is missing required fields or carries malformed values."""


class UtmParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None


class ClickIds(BaseModel):
    model_config = ConfigDict(extra="ignore")

    gclid: str | None = None
    fbclid: str | None = None


def _blank_to_none(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    return value


def has_text(value: object) -> bool:
    return isinstance(value, str) and value != ""


@dataclass(frozen=True)
class AttributionRecord:
    source: str | None = None
    medium: str | None = None
    campaign: str | None = None
    term: str | None = None
    content: str | None = None
    landing_page: str | None = None
    referrer: str | None = None
    gclid: str | None = None
    fbclid: str | None = None

    @classmethod
    def from_wire(
        cls,
        *,
        utm: UtmParams | None,
        click_ids: ClickIds | None,
        landing_page: str | None,
        referrer: str | None,
    ) -> AttributionRecord:
        utm = utm or UtmParams()
        click_ids = click_ids or ClickIds()
        return cls(
            source=_blank_to_none(utm.utm_source),
            medium=_blank_to_none(utm.utm_medium),
            campaign=_blank_to_none(utm.utm_campaign),
            term=_blank_to_none(utm.utm_term),
            content=_blank_to_none(utm.utm_content),
            landing_page=_blank_to_none(landing_page),
            referrer=_blank_to_none(referrer),
            gclid=_blank_to_none(click_ids.gclid),
            fbclid=_blank_to_none(click_ids.fbclid),
        )

    @classmethod
    def from_columns(cls, row: object, prefix: str = "") -> AttributionRecord:
        return cls(**{name: getattr(row, f"{prefix}{name}") for name in field_names()})

    def as_columns(self, prefix: str = "") -> dict[str, str | None]:
        return {f"{prefix}{name}": value for name, value in asdict(self).items()}


def field_names() -> tuple[str, ...]:
    return tuple(item.name for item in fields(AttributionRecord))


def merge_if_absent(model: type, fallback: AttributionRecord, prefix: str = "first_") -> dict[str, Any]:
    """UPDATE values that fill only the ``prefix`` columns of ``model`` still NULL.

    Each column becomes ``COALESCE(column, :fallback)`` so the database keeps
    whatever value is stored at write time, including one committed by a
    concurrent request after this row was read. Applied field by field: a
    merged record may combine values captured at different times.
    """
    return {
        column: func.coalesce(getattr(model, column), value)
        for column, value in fallback.as_columns(prefix).items()
        if value is not None
    }


def clean_ad_click_data(raw: Mapping[str, Any] | None) -> dict[str, str] | None:
    if not raw:
        return None
    cleaned = {
        str(key): value
        for key, value in raw.items()
        if isinstance(value, str) and value.strip() != ""
    }
    return cleaned or None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_plausible_email(email: str) -> bool:
    return "@" in email and "." in email


def require_fields(**values: object) -> None:
    missing = [name for name, value in values.items() if not has_text(value)]
    if missing:
        raise TrackingInputError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
