"""
Human-readable forecast summaries for decision logs.
"""

from typing import Optional

from ..models import EnsembleSummary, WeatherSnapshot


def forecast_agreement(weather: WeatherSnapshot) -> str:
    """Describe how close the NWS point forecast is to the model high."""
    model_high = weather.deterministic_high_f
    if weather.official_high_f is None:
        return f"NWS unavailable. Open-Meteo forecast high: {model_high:.0f}°F"

    nws_high = weather.official_high_f
    diff = abs(nws_high - model_high)
    if diff <= 1.0:
        label = "Strong agreement"
        detail = "within 1°F"
    elif diff <= 3.0:
        label = "Moderate agreement"
        detail = f"{diff:.0f}°F apart"
    else:
        label = "Disagreement"
        detail = f"{diff:.0f}°F apart"
    return f"{label}: NWS {nws_high:.0f}°F vs Open-Meteo {model_high:.0f}°F ({detail})"


def _fmt(value: Optional[float], spec: str = ".0f") -> str:
    return "?" if value is None else format(value, spec)


def ensemble_summary(ensemble: Optional[EnsembleSummary]) -> str:
    if ensemble is None:
        return "No ensemble data"
    return (
        f"{ensemble.member_count} members | "
        f"Mean: {_fmt(ensemble.mean_high, '.1f')}°F | "
        f"Range: {_fmt(ensemble.min_high)}-{_fmt(ensemble.max_high)}°F | "
        f"Std dev: {ensemble.std_dev:.1f}°F | "
        f"P10/P25/P75/P90: {_fmt(ensemble.p10)}/{_fmt(ensemble.p25)}/"
        f"{_fmt(ensemble.p75)}/{_fmt(ensemble.p90)}°F"
    )


def top_buckets(ensemble: Optional[EnsembleSummary], n: int = 3) -> str:
    """The n most likely buckets, e.g. '40-42°F 35% | 38-40°F 30%'."""
    if ensemble is None or not ensemble.buckets:
        return "none"
    ranked = sorted(ensemble.buckets, key=lambda b: b.probability, reverse=True)[:n]
    return " | ".join(f"{b.label} {b.probability:.0%}" for b in ranked)
