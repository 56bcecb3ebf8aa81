import pytest

from modules.job_search.lib.models import DEFAULT_LIMIT, MAX_LIMIT, SearchParams


def test_from_mapping_accepts_camel_and_snake_case():
    a = SearchParams.from_mapping({"jobType": "contract", "salaryMin": "40000", "regionalSources": "emploi,Rekrute"})
    b = SearchParams.from_mapping({"job_type": "contract", "salary_min": 40000, "regional_sources": ["emploi", "rekrute"]})
    assert a == b
    assert a.regional_sources == ("emploi", "rekrute")


def test_unknown_keys_are_kept_as_extras():
    params = SearchParams.from_mapping({"query": "dev", "tags": ["python"], "date_posted": "week"})
    assert params.extra == {"tags": ["python"], "date_posted": "week"}
    assert params.as_provider_kwargs()["tags"] == ["python"]


@pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "1e400", "-1e400", "Infinity", "abc", None, [1]])
def test_non_numeric_and_non_finite_values_fall_back(raw):
    params = SearchParams.from_mapping({"page": raw, "limit": raw, "salaryMin": raw, "salaryMax": raw})
    assert params.page == 1
    assert params.limit == DEFAULT_LIMIT
    assert params.salary_min == 0
    assert params.salary_max == 0


@pytest.mark.parametrize("raw,expected", [("0", 1), ("-5", 1), ("7.9", 7), ("500", MAX_LIMIT)])
def test_limit_is_clamped(raw, expected):
    assert SearchParams.from_mapping({"limit": raw}).limit == expected


def test_use_cache_string_false():
    assert SearchParams.from_mapping({"useCache": "false"}).use_cache is False
    assert SearchParams.from_mapping({"cache": "yes"}).use_cache is True
