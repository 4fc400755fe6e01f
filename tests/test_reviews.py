# tests/test_reviews.py — отзывы: проверка полей, один отзыв на автора, кэш карточки
import pytest

from services.context import AuthContext, Registrant
from services.errors import ConflictError, NotFoundError, ValidationFailed
from services.profile_service import ProfileService
from services.review_service import DUPLICATE_REVIEW, ReviewService, validate_review


def _reviewer(user_id: str) -> AuthContext:
    return AuthContext(registrant=Registrant(id=user_id))


@pytest.mark.parametrize(
    "rating, comment, field",
    [
        (None, "Great agent, very helpful", "rating"),
        (0, "Great agent, very helpful", "rating"),
        (6, "Great agent, very helpful", "rating"),
        (4, "", "comment"),
        (4, "too short", "comment"),
    ],
)
def test_review_validation(rating, comment, field):
    result = validate_review(rating, comment)
    assert not result.ok
    assert result.first_failure.field == field


async def test_local_validation_happens_before_lookup(session):
    # профиля нет, но ошибка поля важнее
    with pytest.raises(ValidationFailed) as exc:
        await ReviewService.create_review(session, _reviewer("r1"), "missing", 3, "short")
    assert exc.value.field == "comment"


async def test_review_for_missing_profile(session):
    with pytest.raises(NotFoundError):
        await ReviewService.create_review(session, _reviewer("r1"), "missing", 5, "Excellent work overall")


async def test_second_review_by_same_author_rejected(session, make_profile):
    await make_profile("pro-1", full_name="Pat Pro")
    await make_profile("r1", full_name="Rita Reviewer")
    await ReviewService.create_review(session, _reviewer("r1"), "pro-1", 5, "Excellent work overall")
    await session.commit()

    with pytest.raises(ConflictError) as exc:
        await ReviewService.create_review(session, _reviewer("r1"), "pro-1", 1, "Changed my mind later")
    assert exc.value.message == DUPLICATE_REVIEW

    reviews = await ReviewService.list_reviews(session, "pro-1")
    assert len(reviews) == 1
    assert reviews[0]["rating"] == 5
    assert reviews[0]["reviewer"]["full_name"] == "Rita Reviewer"


async def test_self_review_rejected(session, make_profile):
    await make_profile("pro-1")
    with pytest.raises(ValidationFailed) as exc:
        await ReviewService.create_review(session, _reviewer("pro-1"), "pro-1", 5, "I am the best there is")
    assert exc.value.field == "profile_id"


async def test_rating_stats_and_profile_average(session, make_profile):
    await make_profile("pro-1", full_name="Pat Pro")
    await ReviewService.create_review(session, _reviewer("r1"), "pro-1", 5, "Excellent work overall")
    await ReviewService.create_review(session, _reviewer("r2"), "pro-1", 4, "Good, a bit slow to reply")
    await ReviewService.create_review(session, _reviewer("r3"), "pro-1", 4, "Solid and reliable agent")
    await session.commit()

    stats = await ReviewService.rating_stats(session, ["pro-1", "nobody"])
    assert stats == {"pro-1": (4.3, 3)}
    assert await ReviewService.rating_stats(session, []) == {}

    view = await ProfileService.get_profile(session, "pro-1", use_cache=False)
    assert view["rating"] == 4.3
    assert view["review_count"] == 3
    assert view["reviews"][0]["reviewer"]["full_name"] == "Anonymous"


async def test_new_review_invalidates_cached_profile(session, make_profile):
    await make_profile("pro-1", full_name="Pat Pro")
    first = await ProfileService.get_profile(session, "pro-1")
    assert first["review_count"] == 0
    assert await ProfileService.get_profile(session, "pro-1") is first

    await ReviewService.create_review(session, _reviewer("r1"), "pro-1", 5, "Excellent work overall")
    await session.commit()
    fresh = await ProfileService.get_profile(session, "pro-1")
    assert fresh["review_count"] == 1
