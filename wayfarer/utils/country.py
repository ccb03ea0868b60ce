from typing import Optional

import pycountry


def country_name(value: str) -> Optional[str]:
    """
    Resolve an ISO-2 / ISO-3 code or a loose country name to pycountry's
    common name ('IN' -> 'India', 'fra' -> 'France').
    """
    if not value or not value.strip():
        return None
    v = value.strip()

    if len(v) in (2, 3) and v.isalpha():
        key = "alpha_2" if len(v) == 2 else "alpha_3"
        c = pycountry.countries.get(**{key: v.upper()})
        if c:
            return getattr(c, "common_name", None) or c.name

    try:
        matches = pycountry.countries.search_fuzzy(v)
    except LookupError:
        return None
    c = matches[0]
    return getattr(c, "common_name", None) or c.name
