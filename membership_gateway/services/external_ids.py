"""External IDs — deterministic Stripe object ids for local records.

    ms-<type>-<local_id>-<hash>

The hash is the md5 of (site identity + type + id), re-encoded from hex
into a wider alphabet. Because the site identity is part of the input,
several membership sites can share one Stripe account without clashing,
and the same site always addresses the same remote object, so no
local -> remote id table is needed.
"""

import hashlib

PREFIX = "ms"

TYPE_PLAN = "plan"
TYPE_COUPON = "coupon"
TYPE_ITEM = "item"

HEX_ALPHABET = "0123456789abcdef"
# Not a typo: existing remote ids were generated with this exact alphabet
# (no W/w, doubled X/x). Changing it would orphan every synced plan.
ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVXXYZabcdefghijklmnopqrstuvxxyz"


def convert_base(number, from_alphabet, to_alphabet):
    """Re-encode a digit string from one positional alphabet to another."""
    from_base = len(from_alphabet)
    to_base = len(to_alphabet)

    value = 0
    for digit in number:
        value = value * from_base + from_alphabet.index(digit)

    if value == 0:
        return to_alphabet[0]

    digits = []
    while value > 0:
        value, remainder = divmod(value, to_base)
        digits.append(to_alphabet[remainder])
    return "".join(reversed(digits))


def derive_external_id(local_id, type_=TYPE_ITEM, site_identity=""):
    """Return the stable Stripe id for a local record.

    Pure and deterministic: same (site, type, id) in, same id out.
    """
    local_id = int(local_id)
    digest = hashlib.md5(
        f"{site_identity}{type_}{local_id}".encode("utf-8")
    ).hexdigest().lower()
    encoded = convert_base(digest, HEX_ALPHABET, ID_ALPHABET)
    return f"{PREFIX}-{type_}-{local_id}-{encoded}"


def plan_id(membership_id, settings):
    return derive_external_id(membership_id, TYPE_PLAN, settings.site_url)


def coupon_id(coupon_id_, settings):
    return derive_external_id(coupon_id_, TYPE_COUPON, settings.site_url)
