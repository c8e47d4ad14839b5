# envcache/services/scoring.py
# -----------------------------------------------------------------------------
# Exposure scoring
# - raw AQI / pollen index / UV index -> integer sub-scores + weighted overall
# - piecewise-linear bands; a boundary value belongs to the lower segment
# - Decimal arithmetic with half-up rounding so results never drift
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Tuple

from envcache.core.errors import ValidationError

# (upper bound inclusive, base, slope, segment start); None bound = saturated value
Band = Tuple[Optional[Decimal], Decimal, Decimal, Decimal]

AIR_QUALITY_BANDS: Sequence[Band] = (
    (Decimal("50"), Decimal("0"), Decimal("0"), Decimal("0")),
    (Decimal("100"), Decimal("0"), Decimal("2"), Decimal("50")),
    (Decimal("150"), Decimal("100"), Decimal("2"), Decimal("100")),
    (Decimal("200"), Decimal("200"), Decimal("2"), Decimal("150")),
    (Decimal("300"), Decimal("300"), Decimal("2"), Decimal("200")),
    (None, Decimal("500"), Decimal("0"), Decimal("0")),
)

POLLEN_BANDS: Sequence[Band] = (
    (Decimal("2.4"), Decimal("0"), Decimal("0"), Decimal("0")),
    (Decimal("4.8"), Decimal("0"), Decimal("20.8"), Decimal("2.4")),
    (Decimal("9.7"), Decimal("50"), Decimal("10.2"), Decimal("4.8")),
    (Decimal("12.0"), Decimal("100"), Decimal("13.0"), Decimal("9.7")),
    (None, Decimal("130"), Decimal("0"), Decimal("0")),
)

UV_BANDS: Sequence[Band] = (
    (Decimal("2"), Decimal("0"), Decimal("0"), Decimal("0")),
    (Decimal("5"), Decimal("0"), Decimal("33.3"), Decimal("2")),
    (Decimal("7"), Decimal("100"), Decimal("50"), Decimal("5")),
    (Decimal("10"), Decimal("200"), Decimal("33.3"), Decimal("7")),
    (None, Decimal("300"), Decimal("0"), Decimal("0")),
)

WEIGHTS = {
    "air_quality": Decimal("0.4"),
    "pollen": Decimal("0.3"),
    "uv": Decimal("0.3"),
}


@dataclass(frozen=True, slots=True)
class ExposureScores:
    air_quality_score: int
    pollen_score: int
    uv_score: int
    overall_score: int

    def to_dict(self) -> dict:
        return asdict(self)


def _dec(value: float | int | str | None) -> Decimal:
    if value is None:
        return Decimal(0)
    # str() first: Decimal(0.1) would carry the binary float error
    v = Decimal(str(value))
    if v.is_nan() or (v.is_infinite() and v < 0):
        raise ValidationError(f"index must be a finite non-negative number, got {value!r}")
    return v


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def band_score(value: float | int | None, bands: Sequence[Band]) -> int:
    v = _dec(value)
    if v.is_infinite():
        return _round(bands[-1][1])  # above every band: saturated value
    for upper, base, slope, start in bands:
        if upper is None or v <= upper:
            return _round(base + (v - start) * slope)
    raise AssertionError("band table must end with a saturated segment")


def air_quality_score(aqi: float | int | None) -> int:
    return band_score(aqi, AIR_QUALITY_BANDS)


def pollen_score(index: float | int | None) -> int:
    return band_score(index, POLLEN_BANDS)


def uv_score(index: float | int | None) -> int:
    return band_score(index, UV_BANDS)


def overall_score(aq: int, pollen: int, uv: int) -> int:
    total = (
        WEIGHTS["air_quality"] * aq + WEIGHTS["pollen"] * pollen + WEIGHTS["uv"] * uv
    )
    return _round(total)


def score(
    air_quality_index: float | int | None,
    pollen_index: float | int | None,
    uv_index: float | int | None,
) -> ExposureScores:
    """
    Missing inputs count as 0. Sub-scores may exceed 100 (pollen up to 130,
    UV up to 300, AQI up to 500); only the weights shape the overall value.
    """
    aq = air_quality_score(air_quality_index)
    p = pollen_score(pollen_index)
    u = uv_score(uv_index)
    return ExposureScores(
        air_quality_score=aq,
        pollen_score=p,
        uv_score=u,
        overall_score=overall_score(aq, p, u),
    )


# ── level classification (time-in-band accounting) ─────────────────────────
AIR_QUALITY_LEVELS = (
    (50, "good"),
    (100, "moderate"),
    (150, "unhealthy_sensitive"),
    (200, "unhealthy"),
    (300, "very_unhealthy"),
)
POLLEN_LEVELS = (
    (2.4, "low"),
    (4.8, "moderate"),
    (7.2, "high"),
)
UV_LEVELS = (
    (2, "low"),
    (5, "moderate"),
    (7, "high"),
    (10, "very_high"),
)


def _classify(value: float | None, table, top: str) -> str | None:
    if value is None:
        return None
    v = _dec(value)
    for upper, name in table:
        if v <= _dec(upper):
            return name
    return top


def air_quality_level(aqi: float | None) -> str | None:
    return _classify(aqi, AIR_QUALITY_LEVELS, "hazardous")


def pollen_level(index: float | None) -> str | None:
    return _classify(index, POLLEN_LEVELS, "very_high")


def uv_level(index: float | None) -> str | None:
    return _classify(index, UV_LEVELS, "extreme")
