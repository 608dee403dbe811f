import pytest
from pydantic import ValidationError

from kai.settings import KaiSettings


def test_defaults() -> None:
    s = KaiSettings(_env_file=None)

    assert s.escalation_threshold == 0.8
    assert s.csv_sample_rows == 5


def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KAI_CSV_SAMPLE_ROWS", "3")
    monkeypatch.setenv("KAI_FUNCTIONS_BASE_URL", "https://fn.test")

    s = KaiSettings(_env_file=None)

    assert s.csv_sample_rows == 3
    assert s.functions_base_url == "https://fn.test"


@pytest.mark.parametrize(
    "field, value",
    [("escalation_threshold", 1.5), ("escalation_threshold", -0.1), ("csv_sample_rows", 0)],
)
def test_out_of_range_values_are_rejected(field: str, value: float) -> None:
    with pytest.raises(ValidationError):
        KaiSettings(_env_file=None, **{field: value})
