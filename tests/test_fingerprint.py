from referral_core.helpers.fingerprint import canonicalize, fingerprint
from referral_core.models.domain import JobPosting


class TestFingerprint:
    """Content fingerprints used as cache keys"""

    def test_set_order_does_not_matter(self):
        a = fingerprint("summary", {"skills": ["react", "node", "sql"]})
        b = fingerprint("summary", {"skills": ["sql", "React", "node "]})
        assert a == b

    def test_whitespace_in_free_text_is_normalized(self):
        a = fingerprint("summary", {"title": "Backend Engineer", "description": "Build  APIs.\n\nShip fast."})
        b = fingerprint("summary", {"description": "Build APIs. Ship fast.", "title": " Backend   Engineer "})
        assert a == b

    def test_namespace_is_part_of_the_key(self):
        payload = {"title": "Engineer"}
        assert fingerprint("summary", payload) != fingerprint("messages", payload)

    def test_different_content_differs(self):
        assert fingerprint("summary", {"title": "Engineer"}) != fingerprint("summary", {"title": "Designer"})

    def test_models_and_dicts_agree(self):
        job = JobPosting(id="j1", title="Engineer", skills=["b", "a"])
        assert fingerprint("scores", job) == fingerprint("scores", job.model_dump(mode="json"))

    def test_duplicates_collapse(self):
        assert canonicalize(["a", "A", "a "]) == ["a"]

    def test_integral_floats_match_ints(self):
        assert fingerprint("scores", {"score": 70.0}) == fingerprint("scores", {"score": 70})
