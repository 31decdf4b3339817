"""Unit price computation for a product line.

Everything here is pure: the same product data and selection always give the
same price. Amounts are ``Decimal`` and are not rounded until they are
persisted (``round_money``) or turned into provider minor units.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from storefront.common.errors import AppError
from storefront.products.utils import normalize_variant_ids
from storefront.schema.full_schema import InstallationOption

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InstallationSelection:
    option: str = InstallationOption.NONE.value
    location_id: Optional[str] = None


@dataclass(frozen=True)
class PriceBreakdown:
    unit_price: Decimal
    installation_option: str
    installation_add_on_price: Decimal
    installation_location_id: Optional[str]
    installation_location_delta: Decimal


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 do not drag binary noise in
    return Decimal(str(value))


def round_money(value: Any, decimals: int = 2) -> Decimal:
    return to_decimal(value).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def apply_offer(base_price: Decimal, offer_percentage: Optional[Any]) -> Decimal:
    if offer_percentage is None:
        return base_price
    offer = to_decimal(offer_percentage)
    if offer < ZERO or offer > HUNDRED:
        raise AppError("INVALID_OFFER_PERCENTAGE", "Offer percentage must be between 0 and 100",
                       details={"offerPercentage": str(offer)})
    if offer == ZERO:
        return base_price
    return base_price * (1 - offer / HUNDRED)


def variant_modifiers_total(variants: List[Dict[str, Any]], selected_ids: Iterable[str]) -> Decimal:
    """Sum of the modifiers of every variant type the selection touches.

    A variant type contributes its modifier once. Ids that belong to no
    variant type of the product are rejected.
    """
    chosen = set(selected_ids)
    known = set()
    total = ZERO
    for variant in variants or []:
        item_ids = {item.get("id") for item in variant.get("selected_items") or []}
        known |= item_ids
        if item_ids & chosen:
            total += to_decimal(variant.get("price_modifier"))

    unknown = sorted(chosen - known)
    if unknown:
        raise AppError("UNKNOWN_VARIANT_ITEM", "Selected variant item does not belong to this product",
                       details={"unknownVariantItemIds": unknown})
    return total


def resolve_installation(installation_service: Optional[Dict[str, Any]],
                         selection: InstallationSelection) -> Tuple[Decimal, Decimal, Optional[str]]:
    """Returns (add_on_price, location_delta, location_id) for the selection."""
    option = selection.option or InstallationOption.NONE.value
    if option not in {o.value for o in InstallationOption}:
        raise AppError("INVALID_INSTALLATION_OPTION", f"Unknown installation option '{option}'")

    if selection.location_id and option != InstallationOption.HOME.value:
        raise AppError("INSTALLATION_LOCATION_NOT_ALLOWED",
                       "An installation location can only be chosen with at-home installation",
                       details={"installationOption": option, "installationLocationId": selection.location_id})

    if option == InstallationOption.NONE.value:
        return ZERO, ZERO, None

    if not installation_service or not installation_service.get("enabled"):
        raise AppError("INSTALLATION_NOT_AVAILABLE", "Installation service is not offered for this product",
                       details={"installationOption": option})

    if option == InstallationOption.STORE.value:
        return to_decimal(installation_service.get("in_store_price")), ZERO, None

    if not selection.location_id:
        raise AppError("INSTALLATION_LOCATION_REQUIRED", "At-home installation needs an installation location")

    location = next(
        (loc for loc in installation_service.get("available_locations") or []
         if loc.get("location_id") == selection.location_id),
        None,
    )
    if location is None or not location.get("enabled", True):
        raise AppError("INSTALLATION_LOCATION_INVALID", "Installation location is unknown or disabled",
                       details={"installationLocationId": selection.location_id})

    delta = to_decimal(location.get("price_delta"))
    return to_decimal(installation_service.get("at_home_price")) + delta, delta, selection.location_id


def calculate_unit_price(base_price: Any,
                         offer_percentage: Optional[Any],
                         variants: List[Dict[str, Any]],
                         selected_variant_item_ids: Iterable[str],
                         installation_service: Optional[Dict[str, Any]] = None,
                         installation: Optional[InstallationSelection] = None) -> PriceBreakdown:
    selection = installation or InstallationSelection()
    selected = normalize_variant_ids(selected_variant_item_ids)

    price = apply_offer(to_decimal(base_price), offer_percentage)
    price += variant_modifiers_total(variants, selected)
    add_on, delta, location_id = resolve_installation(installation_service, selection)

    return PriceBreakdown(
        unit_price=price + add_on,
        installation_option=selection.option or InstallationOption.NONE.value,
        installation_add_on_price=add_on,
        installation_location_id=location_id,
        installation_location_delta=delta,
    )


def price_product_line(product: Dict[str, Any], selected_variant_item_ids: Iterable[str],
                       installation: Optional[InstallationSelection] = None) -> PriceBreakdown:
    """calculate_unit_price fed from a product row as returned by the product repository."""
    return calculate_unit_price(
        product["base_price"],
        product.get("offer_percentage"),
        product.get("variants") or [],
        selected_variant_item_ids,
        product.get("installation_service"),
        installation,
    )
