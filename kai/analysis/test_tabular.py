import asyncio

import pytest

from kai.actions.types import Attachment, PlatformType
from kai.analysis.tabular import (
    TabularClassifier,
    detect_delimiter,
    header_confidence,
    parse_line,
    split_quoted,
)
from kai.errors import EmptyInputError

INSTAGRAM_CSV = "date,reach,likes\n2024-03-01,100,5\n2024-03-15,150,7\n2024-03-31,200,8\n"


def test_filename_token_short_circuits_header_scoring() -> None:
    result = TabularClassifier().analyze_text(INSTAGRAM_CSV, "relatorio_instagram_marco.csv")

    assert result.platform is PlatformType.INSTAGRAM
    assert result.confidence == 0.9
    assert result.preview.total_rows == 3
    assert result.preview.columns == ["date", "reach", "likes"]
    assert result.preview.metrics_detected == ["reach", "likes"]


def test_filename_wins_over_contradicting_headers() -> None:
    result = TabularClassifier().analyze_text("opens,clicks\n1,2\n", "Instagram-export.csv")

    assert result.platform is PlatformType.INSTAGRAM
    assert result.confidence == 0.9


def test_header_scoring_picks_youtube() -> None:
    content = "watch_time,subscribers,ctr\n10,2,0.05\n"

    result = TabularClassifier().analyze_text(content, "dados.csv")

    assert result.platform is PlatformType.YOUTUBE
    assert result.confidence == 0.8
    assert result.preview.metrics_detected == ["watch_time", "subscribers", "ctr"]


def test_short_filename_tokens_are_word_bounded() -> None:
    classifier = TabularClassifier()

    assert classifier.detect_platform(["foo"], "yt_export.csv")[0] is PlatformType.YOUTUBE
    assert classifier.detect_platform(["foo"], "x_analytics.csv")[0] is PlatformType.TWITTER
    assert classifier.detect_platform(["foo"], "inbox_stats.csv") == (PlatformType.UNKNOWN, 0.3)
    assert classifier.detect_platform(["foo"], "installs.csv") == (PlatformType.UNKNOWN, 0.3)


def test_ties_resolve_in_priority_order() -> None:
    # "impressions" scores for instagram, twitter and linkedin alike
    platform, confidence = TabularClassifier().detect_platform(["Impressions"], "export.csv")

    assert platform is PlatformType.INSTAGRAM
    assert confidence == 0.6


def test_unknown_headers() -> None:
    result = TabularClassifier().analyze_text("foo,bar\n1,2\n", "export.csv")

    assert result.platform is PlatformType.UNKNOWN
    assert result.confidence == 0.3
    assert result.preview.metrics_detected == []


def test_confidence_is_monotonic_and_saturates() -> None:
    scores = [header_confidence(n) for n in range(0, 20)]
    assert scores == sorted(scores)
    assert max(scores) == 0.95

    keywords = ["impressions", "reach", "engagement", "likes", "comments", "saves", "shares", "profile_visits"]
    previous = 0.0
    for n in range(1, len(keywords) + 1):
        content = ",".join(keywords[:n]) + "\n" + ",".join("1" * n) + "\n"
        result = TabularClassifier().analyze_text(content, "export.csv")
        assert result.platform is PlatformType.INSTAGRAM
        assert result.confidence >= previous
        assert result.confidence <= 0.95
        previous = result.confidence


@pytest.mark.parametrize("content", ["date,reach,likes\n", "date,reach,likes\n\n   \n", "", "   \n\t\n", None])
def test_header_only_and_blank_inputs_raise(content) -> None:
    with pytest.raises(EmptyInputError):
        TabularClassifier().analyze_text(content, "x.csv")


def test_analyze_csv_without_file_raises() -> None:
    with pytest.raises(EmptyInputError):
        asyncio.run(TabularClassifier().analyze_csv(None))


def test_semicolons_and_quoted_delimiters() -> None:
    content = 'title;"views; total";subscribers\n"A;B";10;20\n'

    result = TabularClassifier().analyze_text(content, "export.csv")

    assert result.preview.columns == ["title", "views; total", "subscribers"]
    assert result.preview.sample_data == [{"title": "A;B", "views; total": "10", "subscribers": "20"}]
    assert result.platform is PlatformType.YOUTUBE
    assert result.confidence == 0.7


def test_delimiter_detection() -> None:
    assert detect_delimiter('a;b;"c,d,e"') == ";"
    assert detect_delimiter("a,b;c,d") == ","
    assert parse_line(' a, "b, c",d ') == ["a", "b, c", "d"]


def test_header_delimiter_applies_to_every_row() -> None:
    content = "data;alcance;curtidas\n01/05;1,5;2,3\n02/05;1,2,3;4\n"

    result = TabularClassifier().analyze_text(content, "instagram.csv")

    assert result.preview.sample_data == [
        {"data": "01/05", "alcance": "1,5", "curtidas": "2,3"},
        {"data": "02/05", "alcance": "1,2,3", "curtidas": "4"},
    ]
    assert result.preview.date_range.start == "01/05"


def test_oversized_quoted_cell_is_still_parsed() -> None:
    huge = "x" * 200_000
    content = f'caption,likes\n"{huge}, more",5\n'

    result = TabularClassifier().analyze_text(content, "export.csv")

    assert result.preview.sample_data[0]["caption"] == f"{huge}, more"
    assert result.preview.sample_data[0]["likes"] == "5"


def test_split_quoted_keeps_escaped_quotes() -> None:
    assert split_quoted('a;"say ""hi""; now";c', ";") == ["a", 'say "hi"; now', "c"]


def test_bom_and_short_rows() -> None:
    content = "\ufeffdate,opens,clicks\n2024-01-01,10\n2024-01-02,12,3\n"

    result = TabularClassifier().analyze_text(content, "export.csv")

    assert result.preview.columns[0] == "date"
    assert result.platform is PlatformType.NEWSLETTER
    assert result.preview.sample_data[0] == {"date": "2024-01-01", "opens": "10", "clicks": ""}


def test_date_range_comes_from_sampled_rows() -> None:
    rows = "\n".join(f"2024-03-{d:02d},{d}" for d in range(1, 11))
    content = f"Data,alcance\n{rows}\n"

    result = TabularClassifier(sample_rows=3).analyze_text(content, "export.csv")

    assert result.preview.total_rows == 10
    assert len(result.preview.sample_data) == 3
    assert result.preview.date_range is not None
    assert result.preview.date_range.start == "2024-03-01"
    assert result.preview.date_range.end == "2024-03-03"
    assert result.preview.date_range.sampled is True


def test_no_date_column_means_no_range() -> None:
    result = TabularClassifier().analyze_text("views,likes\n1,2\n", "export.csv")

    assert result.preview.date_range is None


def test_analyze_csv_reads_attachment() -> None:
    file = Attachment(name="relatorio_instagram.csv", content_type="text/csv", data=INSTAGRAM_CSV.encode())

    result = asyncio.run(TabularClassifier().analyze_csv(file))

    assert result.platform is PlatformType.INSTAGRAM
    assert result.to_dict()["platform"] == "instagram"
