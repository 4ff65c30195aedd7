from esp.ingestion.dedup import DedupIndex


def test_admits_unknown_once():
    index = DedupIndex()
    assert index.should_admit("Q1") is True
    assert index.should_admit("Q1") is False


def test_skips_canonical_and_staged_case_insensitively():
    index = DedupIndex(canonical_ids=["Q10"], staged_ids=["q20"])
    assert index.should_admit("q10") is False
    assert index.should_admit("Q20") is False
    assert index.should_admit("Q30") is True


def test_missing_identifier_is_always_admitted():
    index = DedupIndex(canonical_ids=[None, ""])
    assert index.should_admit(None) is True
    assert index.should_admit("  ") is True
    assert index.should_admit(None) is True
    assert index.staged_count == 0


def test_counts_and_is_known():
    index = DedupIndex(canonical_ids=["Q1", "q1", "Q2"], staged_ids=["Q3"])
    assert index.canonical_count == 2
    assert index.staged_count == 1
    assert index.is_known("q3")
    assert not index.is_known("Q4")
    index.should_admit("Q4")
    assert index.is_known("Q4")
    assert index.staged_count == 2


def test_from_repository_reads_both_stores(repository):
    repository.add_canonical("Q100")
    index = DedupIndex.from_repository(repository)
    assert repository.identifier_reads == 1
    assert index.should_admit("Q100") is False
    assert index.should_admit("Q101") is True
