import pytest

from app.domain.sensors.reading import score_quality
from app.enums import QualityBand


@pytest.mark.parametrize(
    "kwargs, score, band",
    [
        (dict(battery=85, signal_strength=-55, temperature=21, humidity=60), 100, QualityBand.EXCELLENT),
        (dict(battery=85, signal_strength=-85, temperature=21, humidity=60), 80, QualityBand.GOOD),
        (dict(battery=85, signal_strength=-75, temperature=21, humidity=60), 90, QualityBand.EXCELLENT),
        (dict(battery=35, signal_strength=-55, temperature=21, humidity=60), 95, QualityBand.EXCELLENT),
        (dict(battery=15, signal_strength=-75), 65, QualityBand.FAIR),
        (dict(battery=10, signal_strength=-90), 55, QualityBand.POOR),
        (dict(battery=85), 90, QualityBand.EXCELLENT),
    ],
)
def test_score_quality_deductions(kwargs, score, band):
    assert score_quality(**kwargs) == (score, band)


def test_quality_band_edges():
    assert QualityBand.from_score(90) == QualityBand.EXCELLENT
    assert QualityBand.from_score(89) == QualityBand.GOOD
    assert QualityBand.from_score(75) == QualityBand.GOOD
    assert QualityBand.from_score(74) == QualityBand.FAIR
    assert QualityBand.from_score(60) == QualityBand.FAIR
    assert QualityBand.from_score(59) == QualityBand.POOR
