#!/usr/bin/env python3
"""Channel matching utilities for stream name comparison.

Two names are considered the same channel when any of these tiers agree,
checked in order: raw equality, simplified equality, equality after the
"similar letters" transliteration, equality after full transliteration, and
membership of both names in the same alias group.
"""
import re

_PUNCTUATION = "-!\"#$%&'()*,./:;<=>?@[\\]^_`{|}~"
_SIMPLIFY_RX = re.compile(r"[\x00-\x1f\x7f\s" + re.escape(_PUNCTUATION) + r"]+")


def simplify_name(name):
    """Lowercase and drop whitespace, control characters and punctuation (except '+')."""
    return _SIMPLIFY_RX.sub("", name.lower())


def simplify_aliases(alias_groups):
    """Simplify every name of every alias group."""
    return [[simplify_name(name) for name in group] for group in alias_groups]


def remap(text, table):
    """Replace characters by table; missing or empty mappings keep the character."""
    return "".join(table.get(char) or char for char in text)


def first_alias(alias_groups, name):
    """Return the first name of the alias group containing name, or name itself."""
    for group in alias_groups:
        if name in group:
            return group[0]
    return name


def is_name_same(general, left, right):
    """
    Check if two channel names refer to the same channel.

    Args:
        general: MatchSettings carrying transliteration tables and aliases
        left: First name
        right: Second name

    Returns:
        bool
    """
    if left == right:
        return True

    left = simplify_name(left)
    right = simplify_name(right)
    if left == right:
        return True

    if general.similar_translit:
        if remap(left, general.similar_translit_map) == remap(right, general.similar_translit_map):
            return True

    if general.full_translit:
        if remap(left, general.full_translit_map) == remap(right, general.full_translit_map):
            return True

    if general.name_aliases:
        aliases = general.simple_name_alias_list
        if first_alias(aliases, left) == first_alias(aliases, right):
            return True

    return False


def find_named(general, records, name):
    """Return the first record whose name matches, or None."""
    for record in records:
        if is_name_same(general, record.name, name):
            return record
    return None


def every_similar(general, records, name):
    """Yield every record whose name matches, in list order."""
    for record in records:
        if is_name_same(general, record.name, name):
            yield record


def get_similar(general, records, name):
    return list(every_similar(general, records, name))


def has_any_similar(general, records, name):
    return find_named(general, records, name) is not None
