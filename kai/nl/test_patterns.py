import dataclasses
import re

import pytest

from kai.actions.types import ActionType
from kai.nl.patterns import DEFAULT_TABLES


def test_extracts_client_format_and_date_from_portuguese_request() -> None:
    params = DEFAULT_TABLES.extract_params(
        "crie um carrossel sobre produtividade para a empresa XYZ em 10/05"
    )

    assert params == {"client_name": "XYZ", "format": "carousel", "date": "10/05"}


def test_extracts_english_fields_and_assignee() -> None:
    params = DEFAULT_TABLES.extract_params("create a post for Acme Corp by friday, assign to @maria")

    assert params["client_name"] == "Acme Corp"
    assert params["format"] == "post"
    assert params["date"] == "friday"
    assert params["assignee"] == "maria"


def test_assignee_requires_explicit_marker() -> None:
    params = DEFAULT_TABLES.extract_params("crie um card para a Ana para amanhã")

    assert "assignee" not in params
    assert params["client_name"] == "Ana"
    assert params["date"] == "amanhã"


def test_responsible_marker_names_assignee() -> None:
    params = DEFAULT_TABLES.extract_params("criar card de revisão, responsável: joao")

    assert params["assignee"] == "joao"


def test_email_address_is_not_an_assignee() -> None:
    params = DEFAULT_TABLES.extract_params("escreva um post e mande para ana@empresa.com")

    assert "assignee" not in params


def test_longest_format_keyword_wins() -> None:
    params = DEFAULT_TABLES.extract_params("gere um post com vídeos curtos")

    assert params["format"] == "short_video"


def test_url_trailing_punctuation_is_dropped() -> None:
    assert DEFAULT_TABLES.find_url("olha isso: https://example.com/a?b=1).") == "https://example.com/a?b=1"
    assert DEFAULT_TABLES.find_url("sem link aqui") is None


def test_missing_fields_are_omitted() -> None:
    assert DEFAULT_TABLES.extract_params("oi, tudo bem?") == {}


def test_action_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        DEFAULT_TABLES.actions[ActionType.CREATE_CONTENT] = ()  # type: ignore[index]


def test_custom_tables_can_be_substituted() -> None:
    tables = dataclasses.replace(
        DEFAULT_TABLES,
        actions={ActionType.CREATE_CONTENT: (re.compile(r"\bbanana\b", re.I),)},
    )

    assert tables.matches(ActionType.CREATE_CONTENT, "Banana time")
    assert not tables.matches(ActionType.CREATE_CONTENT, "crie um post")
    assert tables.patterns_for(ActionType.UPLOAD_METRICS) == ()
    # the default tables are untouched
    assert DEFAULT_TABLES.matches(ActionType.CREATE_CONTENT, "crie um post")
