"""Tests for metric selectors and the catalog."""

import pytest

from reproq_tui.errors import ConfigError
from reproq_tui.metrics.catalog import (
    DEFAULT_MAPPING,
    METRIC_QUEUE_DEPTH,
    METRIC_TASKS_FAILED,
    METRIC_TASKS_TOTAL,
    default_catalog,
    new_catalog,
    parse_overrides,
)
from reproq_tui.metrics.selector import Selector, parse_selector


class TestParseSelector:
    """Tests for parse_selector."""

    def test_name_and_labels(self) -> None:
        """Quoted label pairs should be parsed into the label filter."""
        selector = parse_selector('m{a="x",b="y"}')
        assert selector.name == "m"
        assert dict(selector.labels) == {"a": "x", "b": "y"}

    def test_name_only(self) -> None:
        """A bare name should produce no labels."""
        selector = parse_selector("m")
        assert selector.name == "m"
        assert dict(selector.labels) == {}

    def test_empty_and_whitespace(self) -> None:
        """Blank input should produce the empty selector."""
        assert parse_selector("").is_empty
        assert parse_selector("   ").is_empty
        assert parse_selector("  ") == Selector()

    def test_surrounding_whitespace_ignored(self) -> None:
        """Whitespace around names, keys and values should be trimmed."""
        selector = parse_selector('  m { a = "x" , b="y" }  ')
        assert selector.name == "m"
        assert dict(selector.labels) == {"a": "x", "b": "y"}

    def test_comma_inside_quotes(self) -> None:
        """Commas inside quoted values should not split pairs."""
        selector = parse_selector('m{a="x,y",b="z"}')
        assert dict(selector.labels) == {"a": "x,y", "b": "z"}

    def test_escaped_quote_in_value(self) -> None:
        """Escaped quotes should be unescaped and not end the value."""
        selector = parse_selector(r'm{a="say \"hi\", ok"}')
        assert dict(selector.labels) == {"a": 'say "hi", ok'}

    def test_unquoted_value(self) -> None:
        """Unquoted values should be taken literally."""
        selector = parse_selector("m{status=failure}")
        assert dict(selector.labels) == {"status": "failure"}

    def test_missing_closing_brace(self) -> None:
        """Label content should run to the end when '}' is missing."""
        selector = parse_selector('m{a="x"')
        assert selector.name == "m"
        assert dict(selector.labels) == {"a": "x"}

    def test_malformed_pairs_dropped(self) -> None:
        """Pairs without '=' or with an empty key or value are dropped."""
        selector = parse_selector('m{novalue,="x",a=,b="y"}')
        assert dict(selector.labels) == {"b": "y"}

    def test_malformed_quoted_value_falls_back(self) -> None:
        """Invalid escapes should fall back to stripping the quotes."""
        selector = parse_selector(r'm{a="bad\q"}')
        assert dict(selector.labels) == {"a": r"bad\q"}

    def test_empty_braces(self) -> None:
        """Empty braces should behave like a bare name."""
        selector = parse_selector("m{}")
        assert selector.name == "m"
        assert not selector.labels

    def test_only_first_equals_splits(self) -> None:
        """Values may contain '='."""
        selector = parse_selector('m{expr="a=b"}')
        assert dict(selector.labels) == {"expr": "a=b"}


class TestSelector:
    """Tests for Selector behavior."""

    def test_matches_superset(self) -> None:
        """Series carrying extra labels should still match."""
        selector = Selector(name="m", labels={"status": "failure"})
        assert selector.matches({"status": "failure", "queue": "default"})
        assert not selector.matches({"status": "success"})
        assert not selector.matches({})

    def test_no_labels_matches_everything(self) -> None:
        """A selector without labels should match every series."""
        assert Selector(name="m").matches({"any": "thing"})

    def test_labels_are_read_only(self) -> None:
        """Selector labels should not be mutable after construction."""
        labels = {"a": "x"}
        selector = Selector(name="m", labels=labels)
        labels["a"] = "changed"
        assert selector.labels["a"] == "x"
        with pytest.raises(TypeError):
            selector.labels["b"] = "y"  # type: ignore[index]

    def test_str_roundtrips_through_parser(self) -> None:
        """str() should render a selector the parser reads back."""
        selector = Selector(name="m", labels={"b": "y", "a": "x"})
        assert str(selector) == 'm{a="x",b="y"}'
        assert parse_selector(str(selector)) == selector


class TestCatalog:
    """Tests for catalog construction."""

    def test_default_catalog_covers_all_keys(self) -> None:
        """Every default mapping should be compiled."""
        catalog = default_catalog()
        assert set(catalog.keys()) == set(DEFAULT_MAPPING)
        assert catalog.name(METRIC_QUEUE_DEPTH) == "reproq_queue_depth"
        failed = catalog.selector(METRIC_TASKS_FAILED)
        assert failed.name == "reproq_tasks_processed_total"
        assert dict(failed.labels) == {"status": "failure"}

    def test_overrides_applied(self) -> None:
        """Non-empty overrides should replace defaults."""
        catalog = new_catalog({METRIC_QUEUE_DEPTH: 'jobs_waiting{queue="a"}'})
        selector = catalog.selector(METRIC_QUEUE_DEPTH)
        assert selector.name == "jobs_waiting"
        assert dict(selector.labels) == {"queue": "a"}
        assert catalog.name(METRIC_TASKS_TOTAL) == DEFAULT_MAPPING[METRIC_TASKS_TOTAL]

    def test_empty_override_ignored(self) -> None:
        """Empty override values should never erase a default."""
        catalog = new_catalog({METRIC_QUEUE_DEPTH: ""})
        assert catalog.name(METRIC_QUEUE_DEPTH) == "reproq_queue_depth"

    def test_new_key_added(self) -> None:
        """Overrides may introduce keys the defaults do not have."""
        catalog = new_catalog({"custom": "my_gauge"})
        assert "custom" in catalog.keys()
        assert catalog.selector("custom").name == "my_gauge"

    def test_unknown_key(self) -> None:
        """Unknown keys resolve to an empty name and selector."""
        catalog = default_catalog()
        assert catalog.name("nope") == ""
        assert catalog.selector("nope").is_empty

    def test_catalogs_are_independent(self) -> None:
        """Building a catalog should not mutate the defaults."""
        new_catalog({METRIC_QUEUE_DEPTH: "other"})
        assert default_catalog().name(METRIC_QUEUE_DEPTH) == "reproq_queue_depth"


class TestParseOverrides:
    """Tests for parse_overrides."""

    def test_parses_pairs(self) -> None:
        """Only the first '=' should split key and selector."""
        overrides = parse_overrides(
            ['queue_depth=jobs{queue="a"}', " tasks_total = done_total "]
        )
        assert overrides == {
            "queue_depth": 'jobs{queue="a"}',
            "tasks_total": "done_total",
        }

    def test_blank_entries_skipped(self) -> None:
        """Blank entries should be ignored."""
        assert parse_overrides(["", "  "]) == {}

    def test_missing_separator(self) -> None:
        """Entries without '=' should raise ConfigError."""
        with pytest.raises(ConfigError) as exc_info:
            parse_overrides(["queue_depth"])
        assert exc_info.value.field == "metrics"

    def test_empty_key(self) -> None:
        """Entries with an empty key should raise ConfigError."""
        with pytest.raises(ConfigError):
            parse_overrides(["=selector"])
