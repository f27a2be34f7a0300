"""
Tests for content fingerprinting.
"""
from card_engine.services.fingerprint_service import (
    fingerprint,
    generate_file_hash,
    normalize_text,
)


def test_normalize_text_folds_case_and_whitespace():
    assert normalize_text("  Annual\tReview\n\n  Policy ") == "annual review policy"
    assert normalize_text(None) == ""
    assert normalize_text("STRASSE") == normalize_text("straße")


def test_fingerprint_is_stable_across_formatting():
    base = fingerprint("Annual review", "Employees must review the policy every year.")
    assert base == fingerprint("ANNUAL   REVIEW", "Employees must review\nthe policy every year.")
    assert base == fingerprint(" annual review ", "employees must review the policy every year. ")
    assert len(base) == 64


def test_fingerprint_distinguishes_title_from_content():
    # Moving words across the title/content boundary must change the hash
    assert fingerprint("ab", "c") != fingerprint("a", "bc")
    assert fingerprint("a b", "c") != fingerprint("a", "b c")
    assert fingerprint("", "abc") != fingerprint("abc", "")


def test_fingerprint_collision_corpus():
    corpus = [
        ("Annual review", "Employees must review the policy every year."),
        ("Annual review", "Employees must review the policy every month."),
        ("Annual reviews", "Employees must review the policy every year."),
        ("Checklist", "1. Lock screen 2. Badge in"),
        ("Checklist", "1. Lock screen 2. Badge out"),
        ("Quote", "Ship early, ship often."),
        ("", ""),
        ("Café", "Crème brûlée"),
        ("Cafe", "Creme brulee"),
    ]
    hashes = {fingerprint(title, content) for title, content in corpus}
    assert len(hashes) == len(corpus)


def test_generate_file_hash(tmp_path):
    path = tmp_path / "policy.pdf"
    path.write_bytes(b"%PDF-1.4 policy")
    digest = generate_file_hash(str(path))
    assert digest is not None and len(digest) == 64
    assert digest == generate_file_hash(str(path))
    assert generate_file_hash(str(tmp_path / "missing.pdf")) is None
