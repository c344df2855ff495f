"""
Food package normalization and booking totals.

Venue catalogs define package templates; a booking may pick a template and
override parts of it. ``recalculate_food_package`` merges the two with one
explicit rule per field and produces the snapshot stored on the booking.
``compute_totals`` scales the snapshot by guest count and adds services.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

from venue_booking.domain.exceptions import ValidationError

ZERO = Decimal("0")


class PriceType(str, Enum):
    PER_GUEST = "per_guest"
    FLAT = "flat"


class SelectionType(str, Enum):
    FREE = "free"
    LIMIT = "limit"
    ALL_INCLUDED = "all_included"


def to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"{field_name} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    if amount < ZERO:
        raise ValidationError(f"{field_name} cannot be negative")
    return amount


# -----------------------------
# Snapshot stored on the booking
# -----------------------------
@dataclass(frozen=True)
class FoodItem:
    name: str
    price_per_person: Decimal = ZERO
    description: str | None = None
    is_custom: bool = False

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "price_per_person": str(self.price_per_person),
            "description": self.description,
            "is_custom": self.is_custom,
        }

    @classmethod
    def from_document(cls, data: dict) -> "FoodItem":
        name = data.get("name")
        if not name:
            raise ValidationError("Food item name is required")
        return cls(
            name=name,
            price_per_person=to_decimal(data.get("price_per_person", 0), "Item price"),
            description=data.get("description"),
            is_custom=bool(data.get("is_custom", False)),
        )


@dataclass(frozen=True)
class FoodPackageSection:
    name: str
    price_per_person: Decimal
    selection_type: SelectionType = SelectionType.ALL_INCLUDED
    max_selectable: int | None = None
    items: tuple[FoodItem, ...] = ()

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "price_per_person": str(self.price_per_person),
            "selection_type": self.selection_type.value,
            "max_selectable": self.max_selectable,
            "items": [item.to_document() for item in self.items],
        }

    @classmethod
    def from_document(cls, data: dict) -> "FoodPackageSection":
        return cls(
            name=data["name"],
            price_per_person=to_decimal(data["price_per_person"], "Section price"),
            selection_type=SelectionType(data.get("selection_type", SelectionType.ALL_INCLUDED)),
            max_selectable=data.get("max_selectable"),
            items=tuple(FoodItem.from_document(item) for item in data.get("items", [])),
        )


@dataclass(frozen=True)
class FoodPackage:
    """Denormalized package snapshot held by a booking."""

    name: str
    price_type: PriceType
    price: Decimal = ZERO
    sections: tuple[FoodPackageSection, ...] = ()
    inclusions: tuple[str, ...] = ()
    source_package_id: str | None = None
    is_customised: bool = False

    @property
    def sections_price_per_person(self) -> Decimal:
        return sum((section.price_per_person for section in self.sections), ZERO)

    @property
    def total_price_per_person(self) -> Decimal:
        if self.price_type is PriceType.PER_GUEST:
            return self.sections_price_per_person + self.price
        return self.sections_price_per_person

    def to_document(self) -> dict:
        return {
            "source_package_id": self.source_package_id,
            "name": self.name,
            "price_type": self.price_type.value,
            "price": str(self.price),
            "sections": [section.to_document() for section in self.sections],
            "inclusions": list(self.inclusions),
            "is_customised": self.is_customised,
            "total_price_per_person": str(self.total_price_per_person),
        }

    @classmethod
    def from_document(cls, data: dict) -> "FoodPackage":
        return cls(
            name=data["name"],
            price_type=PriceType(data["price_type"]),
            price=to_decimal(data.get("price", 0), "Package price"),
            sections=tuple(
                FoodPackageSection.from_document(section)
                for section in data.get("sections", [])
            ),
            inclusions=tuple(data.get("inclusions", [])),
            source_package_id=data.get("source_package_id"),
            is_customised=bool(data.get("is_customised", False)),
        )


# -----------------------------
# Venue catalog template
# -----------------------------
@dataclass(frozen=True)
class TemplateSection:
    name: str
    price_per_person: Decimal | None = None
    selection_type: SelectionType = SelectionType.ALL_INCLUDED
    max_selectable: int | None = None
    default_price: Decimal | None = None
    items: tuple[FoodItem, ...] = ()


@dataclass(frozen=True)
class VenuePackageTemplate:
    id: str
    name: str
    price: Decimal
    price_type: PriceType
    description: str = ""
    inclusions: tuple[str, ...] = ()
    sections: tuple[TemplateSection, ...] = ()

    @classmethod
    def from_document(cls, data: dict) -> "VenuePackageTemplate":
        sections = []
        for section in data.get("sections", []):
            ppp = section.get("price_per_person")
            default = section.get("default_price")
            sections.append(
                TemplateSection(
                    name=section["name"],
                    price_per_person=None if ppp is None else to_decimal(ppp, "Section price"),
                    selection_type=SelectionType(
                        section.get("selection_type", SelectionType.ALL_INCLUDED)
                    ),
                    max_selectable=section.get("max_selectable"),
                    default_price=None if default is None else to_decimal(default, "Default price"),
                    items=tuple(FoodItem.from_document(item) for item in section.get("items", [])),
                )
            )
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=to_decimal(data.get("price", 0), "Package price"),
            price_type=PriceType(data["price_type"]),
            description=data.get("description", ""),
            inclusions=tuple(data.get("inclusions", [])),
            sections=tuple(sections),
        )


# -----------------------------
# Booking-time overrides
# -----------------------------
@dataclass(frozen=True)
class SectionOverride:
    """Every field left as None keeps the template value."""

    name: str
    price_per_person: Decimal | None = None
    selection_type: SelectionType | None = None
    max_selectable: int | None = None
    default_price: Decimal | None = None
    items: tuple[FoodItem, ...] | None = None
    remove: bool = False


@dataclass(frozen=True)
class FoodPackageRequest:
    source_package_id: str | None = None
    name: str | None = None
    price_type: PriceType | None = None
    price: Decimal | None = None
    sections: tuple[SectionOverride, ...] = ()
    inclusions: tuple[str, ...] | None = None
    add_inclusions: tuple[str, ...] = ()
    drop_inclusions: tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceLine:
    service: str
    price: Decimal = ZERO
    vendor_name: str | None = None

    def to_document(self) -> dict:
        return {
            "service": self.service,
            "price": str(self.price),
            "vendor_name": self.vendor_name,
        }

    @classmethod
    def from_document(cls, data: dict) -> "ServiceLine":
        return cls(
            service=data["service"],
            price=to_decimal(data.get("price", 0), "Service price"),
            vendor_name=data.get("vendor_name"),
        )


@dataclass(frozen=True)
class PricingTotals:
    food_cost_total: Decimal
    services_total: Decimal
    total_amount: Decimal


# -----------------------------
# Merge rules
# -----------------------------
def _section_price(
    name: str,
    explicit: Decimal | None,
    items: Iterable[FoodItem],
    default_price: Decimal | None,
) -> Decimal:
    if explicit is not None:
        return to_decimal(explicit, f"Price of section {name}")
    items = tuple(items)
    if items:
        return sum(
            (to_decimal(item.price_per_person, f"Price of item {item.name}") for item in items),
            ZERO,
        )
    if default_price is not None:
        return to_decimal(default_price, f"Default price of section {name}")
    raise ValidationError(f"Section {name} needs a price per person, items or a default price")


def _merge_section(base: TemplateSection, override: SectionOverride | None) -> FoodPackageSection:
    if override is None:
        override = SectionOverride(name=base.name)

    items = base.items if override.items is None else override.items
    if override.price_per_person is not None:
        explicit = override.price_per_person
    elif override.items is not None:
        # new item selection reprices the section
        explicit = None
    else:
        explicit = base.price_per_person
    default_price = (
        override.default_price if override.default_price is not None else base.default_price
    )

    return FoodPackageSection(
        name=base.name,
        price_per_person=_section_price(base.name, explicit, items, default_price),
        selection_type=override.selection_type or base.selection_type,
        max_selectable=(
            override.max_selectable
            if override.max_selectable is not None
            else base.max_selectable
        ),
        items=tuple(items),
    )


def _merge_inclusions(
    base: Iterable[str],
    request: FoodPackageRequest,
) -> tuple[str, ...]:
    if request.inclusions is not None:
        merged = list(request.inclusions)
    else:
        dropped = set(request.drop_inclusions)
        merged = [item for item in base if item not in dropped]
    merged.extend(request.add_inclusions)

    seen: set[str] = set()
    result = []
    for item in merged:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return tuple(result)


def _is_customised(request: FoodPackageRequest) -> bool:
    return bool(
        request.name is not None
        or request.price_type is not None
        or request.price is not None
        or request.sections
        or request.inclusions is not None
        or request.add_inclusions
        or request.drop_inclusions
    )


def recalculate_food_package(
    request: FoodPackageRequest,
    template: VenuePackageTemplate | None = None,
) -> FoodPackage:
    """Merge a booking's package request over an optional venue template."""
    from_template = template is not None
    if template is None:
        template = VenuePackageTemplate(
            id="",
            name="",
            price=ZERO,
            price_type=PriceType.PER_GUEST,
        )
        if not request.name:
            raise ValidationError("Food package name is required")

    overrides = {}
    for override in request.sections:
        if override.name in overrides:
            raise ValidationError(f"Section {override.name} appears more than once")
        overrides[override.name] = override

    sections = []
    for base in template.sections:
        override = overrides.pop(base.name, None)
        if override is not None and override.remove:
            continue
        sections.append(_merge_section(base, override))

    for override in overrides.values():
        if override.remove:
            continue
        sections.append(_merge_section(TemplateSection(name=override.name), override))

    price = template.price if request.price is None else to_decimal(request.price, "Package price")

    return FoodPackage(
        name=request.name or template.name,
        price_type=request.price_type or template.price_type,
        price=price,
        sections=tuple(sections),
        inclusions=_merge_inclusions(template.inclusions, request),
        source_package_id=template.id if from_template else request.source_package_id,
        is_customised=_is_customised(request) if from_template else True,
    )


def compute_totals(
    package: FoodPackage | None,
    guest_count: int,
    services: Iterable[ServiceLine] = (),
) -> PricingTotals:
    if guest_count < 1:
        raise ValidationError("Guest count must be at least 1")

    food_cost_total = ZERO
    if package is not None:
        food_cost_total = package.sections_price_per_person * guest_count
        if package.price_type is PriceType.PER_GUEST:
            food_cost_total += package.price * guest_count
        else:
            food_cost_total += package.price

    services_total = sum(
        (to_decimal(service.price, f"Price of service {service.service}") for service in services),
        ZERO,
    )

    return PricingTotals(
        food_cost_total=food_cost_total,
        services_total=services_total,
        total_amount=food_cost_total + services_total,
    )
