from typing import Any, Dict, Iterable, List, Optional

DEFAULT_VARIANT_KEY = "default"


def normalize_variant_ids(ids: Optional[Iterable[Any]]) -> List[str]:
    """Deduplicate and sort variant item ids , empty / blank ids are dropped."""
    if not ids:
        return []
    cleaned = {str(i).strip() for i in ids if i is not None}
    cleaned.discard("")
    return sorted(cleaned)


def variant_combination_key(ids: Optional[Iterable[Any]]) -> str:
    normalized = normalize_variant_ids(ids)
    if not normalized:
        return DEFAULT_VARIANT_KEY
    return "+".join(normalized)


def variant_item_ids(variants: List[Dict[str, Any]]) -> List[str]:
    return [item.get("id") for v in variants or [] for item in v.get("selected_items") or []]


def build_variant_label(variants: List[Dict[str, Any]], selected_ids: List[str]) -> Optional[str]:
    # "Color: Red, Size: L"
    chosen = set(selected_ids)
    names = []
    for variant in variants or []:
        for item in variant.get("selected_items") or []:
            if item.get("id") in chosen:
                names.append(f"{variant.get('variant_type_name')}: {item.get('name')}")
    return ", ".join(names) if names else None


def filter_images_by_variants(images: List[Dict[str, Any]], selected_ids: List[str]) -> List[Dict[str, Any]]:
    """Images whose mapping matches the chosen variant items , ordered by ``order``.

    An image without mapped variants is shown for every selection. A mapping
    entry is either a single item id or a "+" joined combination that must be
    fully selected.
    """
    chosen = set(selected_ids)

    def matches(image):
        mapped = image.get("mapped_variants") or []
        if not mapped:
            return True
        return any(m in chosen or set(m.split("+")) <= chosen for m in mapped)

    return sorted((img for img in images or [] if matches(img)), key=lambda img: img.get("order", 0))


def pick_product_image(images: List[Dict[str, Any]], selected_ids: List[str]) -> Optional[str]:
    if not images:
        return None
    if selected_ids:
        matched = filter_images_by_variants(images, selected_ids)
        if matched:
            return matched[0].get("url")
    return images[0].get("url")


def location_name(installation_service: Optional[Dict[str, Any]], location_id: Optional[str]) -> Optional[str]:
    if not installation_service or not location_id:
        return None
    for loc in installation_service.get("available_locations") or []:
        if loc.get("location_id") == location_id:
            return loc.get("name")
    return None
