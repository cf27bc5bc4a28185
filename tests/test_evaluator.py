"""Tests for rubric scoring."""

import pytest
from conftest import make_post

from scoop.core.errors import AIClientError
from scoop.core.evaluator import ContentEvaluator
from scoop.models.ai import Malformed, Ok


def _answer(interest=12, relevance=7, impact=5, **extra):
    data = {
        "interest_level": interest,
        "local_relevance": relevance,
        "community_impact": impact,
        "reasoning": "Local and timely",
    }
    data.update(extra)
    return Ok(parsed=data)


class TestContentEvaluator:
    @pytest.mark.asyncio
    async def test_total_is_sum_of_scores(self, ai_client, mock_settings):
        ai_client.complete_json.return_value = _answer()
        evaluator = ContentEvaluator(ai_client, mock_settings)

        rating = await evaluator.evaluate(make_post(1, id=4))

        assert rating.post_id == 4
        assert (rating.interest_level, rating.local_relevance, rating.community_impact) == (12, 7, 5)
        assert rating.total_score == 24
        assert rating.ai_reasoning == "Local and timely"

    @pytest.mark.asyncio
    async def test_regional_bonus_for_multiple_communities(self, ai_client, mock_settings):
        ai_client.complete_json.return_value = _answer()
        evaluator = ContentEvaluator(ai_client, mock_settings)
        post = make_post(1, description="Sartell and Waite Park share a new trail.")

        rating = await evaluator.evaluate(post)

        assert rating.total_score == 24 + mock_settings.regional_bonus

    @pytest.mark.parametrize(
        "answer",
        [
            _answer(relevance=None),
            _answer(interest=""),
            _answer(interest=21),
            _answer(impact=0),
            _answer(relevance="high"),
        ],
    )
    @pytest.mark.asyncio
    async def test_blank_or_invalid_score_excludes_post(self, ai_client, mock_settings, answer):
        ai_client.complete_json.return_value = answer
        evaluator = ContentEvaluator(ai_client, mock_settings)

        assert await evaluator.evaluate(make_post(1)) is None

    @pytest.mark.asyncio
    async def test_malformed_answer_excludes_post(self, ai_client, mock_settings):
        ai_client.complete_json.return_value = Malformed(raw="I think it's good", reason="no JSON found")

        assert await ContentEvaluator(ai_client, mock_settings).evaluate(make_post(1)) is None

    @pytest.mark.asyncio
    async def test_evaluate_all_survives_failures(self, ai_client, mock_settings):
        answers = {
            "Story number 1": _answer(),
            "Story number 2": AIClientError("All models failed"),
            "Story number 3": _answer(interest=None),
            "Story number 4": _answer(interest=20),
        }

        async def complete_json(prompt, **kwargs):
            for title, answer in answers.items():
                if title in prompt:
                    if isinstance(answer, Exception):
                        raise answer
                    return answer
            raise AssertionError("unexpected prompt")

        ai_client.complete_json.side_effect = complete_json
        evaluator = ContentEvaluator(ai_client, mock_settings)

        rated = await evaluator.evaluate_all([make_post(i) for i in range(1, 5)])

        assert [post.title for post, _ in rated] == ["Story number 1", "Story number 4"]
        assert rated[1][1].total_score == 32
