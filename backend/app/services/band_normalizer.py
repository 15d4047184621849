"""
Band/type token normalization

A COG advertises the bands it carries in two ways: a native ``type`` (e.g.
"VIS") or the sentinel type "MULTI" plus a ``bands`` array whose descriptions
name the real bands, sometimes with a redundant "IMG_" prefix.
"""
from typing import Dict, Iterable, List, Set, Tuple

from app.models.cog import Cog

MULTI_TYPE = "MULTI"
BAND_PREFIX = "IMG_"


def normalize_band_name(description: str) -> str:
    """Strip one leading "IMG_" prefix (case-sensitive)"""
    if description.startswith(BAND_PREFIX):
        return description[len(BAND_PREFIX):]
    return description


def is_native(cog: Cog) -> bool:
    """True when the COG's type is a real band name rather than MULTI"""
    return bool(cog.type) and cog.type != MULTI_TYPE


def band_sources(cog: Cog) -> List[Tuple[str, bool]]:
    """
    Every band token a COG carries, paired with whether it comes from a native type

    A token appearing both as the native type and in the bands array is
    reported once, as native.
    """
    sources: Dict[str, bool] = {}
    if is_native(cog):
        sources[cog.type] = True
    for band in cog.bands or []:
        if band.description:
            sources.setdefault(normalize_band_name(band.description), False)
    return list(sources.items())


def effective_bands(cog: Cog) -> Set[str]:
    """Every token a COG should match when filtering by band or type"""
    return {token for token, _ in band_sources(cog)}


def matches_band(cog: Cog, band: str) -> bool:
    """Band filter; the requested band is normalized the same way as stored descriptions"""
    return normalize_band_name(band) in effective_bands(cog)


def pick_band_representatives(cogs: Iterable[Cog]) -> Dict[str, Cog]:
    """
    One representative COG per band token

    COGs are visited in the caller's order (usually latest acquisition first).
    For each token the first native-sourced COG wins; a MULTI-sourced COG is
    only kept until a native source for the same token shows up, and never
    replaces one.
    """
    chosen: Dict[str, Cog] = {}
    native_tokens: Set[str] = set()

    for cog in cogs:
        for token, native in band_sources(cog):
            if token in native_tokens:
                continue
            if native:
                chosen[token] = cog
                native_tokens.add(token)
            elif token not in chosen:
                chosen[token] = cog

    return chosen


def pick_type_representatives(cogs: Iterable[Cog]) -> Dict[str, Cog]:
    """First COG per stored type value, in the caller's order"""
    chosen: Dict[str, Cog] = {}
    for cog in cogs:
        if cog.type and cog.type not in chosen:
            chosen[cog.type] = cog
    return chosen


def collect_bands(cogs: Iterable[Cog]) -> List[str]:
    """Sorted union of effective bands"""
    tokens: Set[str] = set()
    for cog in cogs:
        tokens |= effective_bands(cog)
    return sorted(tokens)
