"""Unit tests for the bucketed recommendation memoizer."""

import pytest

from healthtrack.cache.result_memoizer import RecommendationSource, ResultMemoizer

PLAN = {"dailyCalories": 2100, "macros": {"protein": 30, "carbs": 40, "fat": 30}}


@pytest.fixture
def memoizer(backend) -> ResultMemoizer:
    return ResultMemoizer(backend)


@pytest.mark.unit
class TestResultMemoizer:
    async def test_similar_profiles_share_an_entry(self, memoizer):
        """BMI 24.9 and 23.1 both fall in the 22.5 bucket."""
        await memoizer.put(24.9, ["diabetes"], PLAN)

        assert await memoizer.get(23.1, ["diabetes"]) == PLAN

    async def test_different_conditions_do_not_collide(self, memoizer):
        await memoizer.put(24.9, ["diabetes"], PLAN)

        assert await memoizer.get(24.9, ["hypertension"]) is None
        assert await memoizer.get(24.9, []) is None

    async def test_different_bucket_misses(self, memoizer):
        await memoizer.put(24.9, None, PLAN)

        assert await memoizer.get(25.0, None) is None

    async def test_hit_count_increments_on_put(self, memoizer):
        await memoizer.put(24.9, ["diabetes"], PLAN)
        first = await memoizer.entry(24.9, ["diabetes"])
        await memoizer.put(23.1, ["diabetes"], PLAN)
        second = await memoizer.entry(24.9, ["diabetes"])

        assert first.hit_count == 1
        assert second.hit_count == 2

    async def test_get_does_not_change_hit_count(self, memoizer):
        await memoizer.put(24.9, None, PLAN)
        await memoizer.get(24.9, None)

        assert (await memoizer.entry(24.9, None)).hit_count == 1

    async def test_stored_entry_fields(self, memoizer, backend):
        await memoizer.put(24.9, ("hypertension", "diabetes"), PLAN)

        raw = await backend.get("calorie:22.5:diabetes,hypertension")
        assert raw["bmiRange"] == 22.5
        assert raw["conditions"] == "diabetes,hypertension"
        assert raw["result"] == PLAN
        assert raw["hitCount"] == 1
        assert "cachedAt" in raw

    async def test_generator_conditions(self, memoizer):
        await memoizer.put(24.9, (c for c in ["b", "a"]), PLAN)

        assert await memoizer.get(24.9, ["a", "b"]) == PLAN

    async def test_ttl_by_source(self, memoizer, backend):
        await memoizer.put(20.0, None, PLAN)
        await memoizer.put(30.0, None, PLAN, source=RecommendationSource.MODEL)

        assert await backend.ttl("calorie:20:none") == 7200
        assert await backend.ttl("calorie:30:none") == 10800

    async def test_expires(self, memoizer, clock):
        await memoizer.put(24.9, None, PLAN, ttl=100)

        clock.advance(100)
        assert await memoizer.get(24.9, None) is None

    async def test_malformed_entry_is_a_miss(self, memoizer, backend):
        await backend.set("calorie:22.5:none", {"hitCount": -5})

        assert await memoizer.get(24.9, None) is None
        assert await memoizer.put(24.9, None, PLAN)
        assert (await memoizer.entry(24.9, None)).hit_count == 1


@pytest.mark.unit
class TestResultMemoizerFailOpen:
    async def test_degrades_to_always_miss(self, disconnected_backend):
        memoizer = ResultMemoizer(disconnected_backend)

        assert await memoizer.put(24.9, None, PLAN) is False
        assert await memoizer.get(24.9, None) is None
        assert await memoizer.entry(24.9, None) is None


class DocumentId:
    """Opaque identifier type pydantic has no serializer for, like a BSON ObjectId."""

    def __str__(self) -> str:
        return "665f1c2ab3e4d5f6a7b8c9d0"


@pytest.mark.unit
class TestResultMemoizerSerialization:
    async def test_unknown_result_types_are_stringified(self, memoizer):
        plan = {**PLAN, "sourceId": DocumentId()}

        assert await memoizer.put(24.9, None, plan) is True

        assert (await memoizer.get(24.9, None))["sourceId"] == "665f1c2ab3e4d5f6a7b8c9d0"

    async def test_unserializable_result_is_not_stored(self, memoizer, backend):
        circular: list = []
        circular.append(circular)

        assert await memoizer.put(24.9, None, circular) is False
        assert not await backend.exists("calorie:22.5:none")
