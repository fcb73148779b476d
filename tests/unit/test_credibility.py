"""Unit tests for the media bias table and domain credibility scoring."""

from datetime import date

import pytest

from deep_research.config import PACKAGE_DIR
from deep_research.credibility.scorer import (
    DEFAULT_CREDIBILITY, GOV_EDU_CREDIBILITY, CredibilityScorer, UnknownDomainLog, credibility_label,
)
from deep_research.credibility.table import CredibilityTable, load_table, parse_press_freedom, score_row
from deep_research.models import Lane

TABLE_PATH = PACKAGE_DIR / "resources" / "media_bias.csv"


@pytest.fixture(scope="module")
def table():
    return load_table(TABLE_PATH)


@pytest.fixture
def unknown_log(tmp_path):
    return UnknownDomainLog(tmp_path / "bias" / "unknown.txt", today=lambda: date(2025, 1, 2))


@pytest.fixture
def scorer(table, unknown_log):
    return CredibilityScorer(table=table, unknown_log=unknown_log)


def test_press_freedom_parsing():
    assert parse_press_freedom("problematic situation (rank ~55)") == pytest.approx(1 - 55 / 180)
    assert parse_press_freedom("india 159/180") == pytest.approx(1 - 159 / 180)
    assert parse_press_freedom("problematic") == 0.65
    assert parse_press_freedom("unclear") is None


def test_score_row_weights():
    cred = score_row(["apnews.com", "USA", "least biased", "very high", "mostly free", "News", "High", "high credibility"])
    assert cred.lane == Lane.CENTER
    assert cred.overall_score == pytest.approx(0.4 + 0.35 + 0.9 * 0.25)


def test_excluded_and_unmapped_rows_are_dropped():
    assert score_row(["x.com", "USA", "conspiracy-pseudoscience", "low", "mostly free", "", "", "low credibility"]) is None
    assert score_row(["x.com", "USA", "satire", "n/a", "mostly free", "", "", "not rated"]) is None
    assert score_row(["x.com", "USA", "right", "do not use (fabricated)", "mostly free", "", "", ""]) is None
    assert score_row(["too", "short"]) is None


def test_table_loads_bundled_csv(table):
    assert "nytimes.com" in table
    assert table.get("foxnews.com").lane == Lane.RIGHT
    assert "infowars.com" not in table
    assert "satirenewsdaily.example" not in table
    assert table.get("scmp.com").press_freedom == pytest.approx(0.694, abs=1e-3)


def test_table_is_read_only(table):
    with pytest.raises(TypeError):
        table.entries["new.com"] = DEFAULT_CREDIBILITY


def test_missing_table_file_yields_empty_table(tmp_path):
    assert len(load_table(tmp_path / "missing.csv")) == 0


def test_exact_and_suffix_lookup(scorer):
    assert scorer.lane_for("https://www.nytimes.com/2025/x") == Lane.LEFT
    assert scorer.lane_for("edition.cnn.com") == Lane.LEFT
    assert scorer.is_known("edition.cnn.com")


def test_government_domain_heuristic_is_not_logged(scorer, unknown_log):
    cred = scorer.score_domain("data.example.gov")
    assert cred == GOV_EDU_CREDIBILITY
    assert cred.overall_score == 0.88
    assert unknown_log.session_domains() == []


def test_institution_allow_list_matches_whole_labels(scorer):
    assert scorer.score_domain("who.int") == GOV_EDU_CREDIBILITY
    assert scorer.score_domain("data.un.org") == GOV_EDU_CREDIBILITY
    assert scorer.score_domain("fun.org") == DEFAULT_CREDIBILITY


def test_unknown_domain_defaults_and_is_logged_once(scorer, unknown_log):
    first = scorer.score_domain("totally-unknown-blog.xyz")
    second = scorer.score_domain("www.totally-unknown-blog.xyz")

    assert first == second == DEFAULT_CREDIBILITY
    assert first.overall_score == 0.55
    assert first.lane == Lane.UNKNOWN
    assert unknown_log.read_entries() == [("2025-01-02", "totally-unknown-blog.xyz")]


def test_unwritable_log_does_not_raise(tmp_path, table):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    log = UnknownDomainLog(blocker / "nested" / "unknown.txt")
    scorer = CredibilityScorer(table=table, unknown_log=log)
    assert scorer.score_domain("another.example") == DEFAULT_CREDIBILITY
    assert log.session_domains() == ["another.example"]


def test_lazy_table_load_from_path():
    scorer = CredibilityScorer(table_path=str(TABLE_PATH))
    assert scorer.is_known("reuters.com")


def test_empty_table_scorer_uses_defaults():
    scorer = CredibilityScorer(table=CredibilityTable())
    assert scorer.credibility_score_for("reuters.com") == 0.55


def test_credibility_label():
    assert credibility_label(0.9) == "high"
    assert credibility_label(0.6) == "medium"
    assert credibility_label(0.2) == "low"
