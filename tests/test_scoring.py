import pytest

from referral_core.models.domain import JobPosting, Profile
from referral_core.models.scoring import Factor, MatchTier, ScoringPreset
from referral_core.services.scoring import (
    WEIGHT_PRESETS, batch_score, compute_score, get_tier, round_half_up,
    score, top_members, validate_weight_presets,
)
from referral_core.utils.exceptions import ConfigurationError


class TestSubScores:
    """Per-factor sub-scores"""

    def test_partial_skill_overlap_rounds_half_up(self):
        profile = Profile(skills=["react", "node"])
        job = JobPosting(skills=["react", "node", "sql"])

        result = score(profile, job)

        assert result.breakdown.skillMatch == 67

    def test_empty_profile_skills_score_zero(self):
        profile = Profile(skills=[])
        job = JobPosting(skills=["react", "node", "sql"])

        result = score(profile, job)

        assert result.breakdown.skillMatch == 0
        assert result.overall == 0

    def test_job_without_skills_scores_zero(self):
        result = score(Profile(skills=["react"]), JobPosting(skills=[]))
        assert result.breakdown.skillMatch == 0

    def test_skill_comparison_is_case_insensitive(self):
        result = score(Profile(skills=["REACT", " Node "]), JobPosting(skills=["react", "node"]))
        assert result.breakdown.skillMatch == 100

    def test_experience_is_exact_match_only(self):
        job = JobPosting(experience_level="senior")
        assert score(Profile(experience_level="senior"), job).breakdown.experienceMatch == 100
        assert score(Profile(experience_level="staff"), job).breakdown.experienceMatch == 0
        assert score(Profile(), job).breakdown.experienceMatch == 0

    def test_company_match_uses_past_companies(self, member, job):
        result = score(member, job, ScoringPreset.CANDIDATE_RANK)
        assert result.breakdown.companyMatch == 100

    def test_location_remote_gets_partial_credit(self):
        job = JobPosting(location="New York", is_remote=True)
        assert score(Profile(location="Lagos"), job, ScoringPreset.CANDIDATE_RANK).breakdown.locationMatch == 80
        assert score(Profile(location="New York, NY"), job, ScoringPreset.CANDIDATE_RANK).breakdown.locationMatch == 100

    def test_missing_profile_scores_zero(self, job):
        result = score(None, job)
        assert result.overall == 0
        assert result.tier == MatchTier.LOW
        assert result.fit_level == "low"


class TestOverallAndTier:
    """Weighted overall score and tiering"""

    def test_network_fit_overall(self, member, job):
        # 0.5 * 66.67 + 0.3 * 100 + 0.2 * 100
        result = score(member, job, ScoringPreset.NETWORK_FIT)
        assert result.overall == 83
        assert result.tier == MatchTier.HIGH
        assert result.fit_level == "good"

    def test_candidate_rank_overall(self, member, job):
        # 0.4 * 66.67 + 0.2 * 100 + 0.15 * 100 + 0.15 * 100 + 0.1 * 100
        result = compute_score(member, job, "candidate-rank")
        assert result.preset == ScoringPreset.CANDIDATE_RANK
        assert result.overall == 87

    @pytest.mark.parametrize("overall,tier", [
        (100, MatchTier.HIGH),
        (70, MatchTier.HIGH),
        (69, MatchTier.MEDIUM),
        (40, MatchTier.MEDIUM),
        (39, MatchTier.LOW),
        (0, MatchTier.LOW),
    ])
    def test_tier_boundaries(self, overall, tier):
        assert get_tier(overall) == tier

    def test_tier_is_monotonic(self):
        ranks = [get_tier(x).rank for x in range(0, 101)]
        assert ranks == sorted(ranks)

    def test_round_half_up(self):
        assert round_half_up(66.5) == 67
        assert round_half_up(66.4999) == 66
        assert round_half_up(2 / 3 * 100) == 67
        assert round_half_up(0.3 * (100.0 * 5 / 12)) == 13

    def test_exact_half_overall_rounds_up(self):
        # 0.3 * 5/12 of the domains is exactly 12.5
        domains = [f"d{i}" for i in range(12)]
        job = JobPosting(id="j", skills=["go"], domains=domains)
        profile = Profile(id="m", domains=domains[:5])

        result = score(profile, job, ScoringPreset.NETWORK_FIT)

        assert result.breakdown.domainMatch == 42
        assert result.overall == 13
        assert result.tier == MatchTier.LOW

    def test_score_is_deterministic(self, member, job):
        for preset in ScoringPreset:
            first = score(member, job, preset)
            second = score(member, job, preset)
            assert first == second
            assert first.model_dump_json() == second.model_dump_json()


class TestReasons:
    """Explainable reason records"""

    def test_reasons_sorted_by_contribution(self, member):
        job = JobPosting(skills=["react", "go"], domains=["frontend"], experience_level="mid")
        result = score(member, job)

        contributions = [r.contribution for r in result.reasons]
        assert contributions == sorted(contributions, reverse=True)
        assert result.reasons[0].factor == Factor.DOMAIN
        assert {r.factor for r in result.reasons} == set(WEIGHT_PRESETS[ScoringPreset.NETWORK_FIT].weights)

    def test_ties_break_on_weight_then_preset_order(self):
        result = score(Profile(), JobPosting())
        assert [r.factor for r in result.reasons] == [Factor.SKILL, Factor.DOMAIN, Factor.EXPERIENCE]

    def test_top_inferences_capped_at_three(self, member, job):
        result = score(member, job, ScoringPreset.CANDIDATE_RANK)
        assert 0 < len(result.top_inferences) <= 3
        assert len(result.top_reasons()) == 3

    def test_explanations_name_matching_skills(self, member, job):
        result = score(member, job)
        skill = next(r for r in result.reasons if r.factor == Factor.SKILL)
        assert "react" in skill.explanation


class TestWeightPresets:
    """Startup validation of weight presets"""

    def test_presets_sum_to_one(self):
        for preset in WEIGHT_PRESETS.values():
            assert sum(preset.weights.values()) == pytest.approx(1.0, abs=1e-9)

    def test_bad_sum_fails_fast(self):
        raw = {
            ScoringPreset.NETWORK_FIT: {Factor.SKILL: 0.5, Factor.DOMAIN: 0.3},
            ScoringPreset.CANDIDATE_RANK: {Factor.SKILL: 1.0},
        }
        with pytest.raises(ConfigurationError):
            validate_weight_presets(raw)

    def test_negative_weight_fails_fast(self):
        raw = {
            ScoringPreset.NETWORK_FIT: {Factor.SKILL: 1.2, Factor.DOMAIN: -0.2},
            ScoringPreset.CANDIDATE_RANK: {Factor.SKILL: 1.0},
        }
        with pytest.raises(ConfigurationError):
            validate_weight_presets(raw)

    def test_missing_preset_fails_fast(self):
        with pytest.raises(ConfigurationError):
            validate_weight_presets({ScoringPreset.NETWORK_FIT: {Factor.SKILL: 1.0}})


class TestBatchScoring:
    """Batch scoring and top members"""

    def test_batch_sorted_and_filtered(self, job):
        strong = Profile(id="a", skills=["react", "node", "sql"], past_companies=["Acme"], experience_level="senior")
        weak = Profile(id="b", skills=["cobol"])
        medium = Profile(id="c", skills=["react", "node"], industries=["fintech"])

        result = batch_score(job, [weak, medium, strong], min_score=10)

        assert [e.member_id for e in result.scores] == ["a", "c"]
        assert result.filtered == 1
        assert result.total == 3
        assert result.scores[0].reasons

    def test_batch_without_reasons(self, job):
        result = batch_score(job, [Profile(id="a")], include_reasons=False)
        assert result.scores[0].reasons is None

    def test_top_members_respects_min_tier_and_limit(self, member, job):
        others = [Profile(id=f"x{i}", skills=["cobol"]) for i in range(3)]
        ranked = top_members(job, [member] + others, limit=5, min_tier=MatchTier.MEDIUM)

        assert [r["member_id"] for r in ranked] == ["m1"]
        assert ranked[0]["tier"] == MatchTier.HIGH
