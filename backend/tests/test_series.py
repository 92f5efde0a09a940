from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from db.models import ChannelDay, ChannelFeature
from ml.errors import MLInputError, SeriesInvalidError, SeriesReadError
from ml.series import get_days_since_last_video_by_date, get_metric_series

CHANNEL = "UC-series"


@pytest.mark.asyncio
async def test_series_is_returned_in_date_order(test_db):
    for day, views in [(date(2026, 1, 3), 30.0), (date(2026, 1, 1), 10.0), (date(2026, 1, 2), 20.0)]:
        test_db.add(ChannelDay(channel_id=CHANNEL, date=day, views=views, subscribers=5.0))
    test_db.add(ChannelDay(channel_id="UC-other", date=date(2026, 1, 1), views=999.0, subscribers=1.0))
    await test_db.commit()

    series = await get_metric_series(test_db, CHANNEL, "views")

    assert [p.date for p in series] == [date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 3)]
    assert [p.value for p in series] == [10.0, 20.0, 30.0]

    subscribers = await get_metric_series(test_db, CHANNEL, "subscribers")
    assert [p.value for p in subscribers] == [5.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_unknown_channel_yields_empty_series(test_db):
    assert await get_metric_series(test_db, "UC-missing", "views") == []


@pytest.mark.asyncio
async def test_null_value_fails_the_whole_read(test_db, seed_series):
    await seed_series([10, 20, 30], metric="views")

    # Rows were seeded with views only, so subscribers are NULL.
    with pytest.raises(SeriesInvalidError) as exc_info:
        await get_metric_series(test_db, "UC-test-channel", "subscribers")

    assert exc_info.value.code == "ML_SERIES_ROW_INVALID"
    assert exc_info.value.context["row_index"] == 0
    assert exc_info.value.context["issues"]


@pytest.mark.asyncio
async def test_negative_value_is_invalid(test_db):
    test_db.add(ChannelDay(channel_id=CHANNEL, date=date(2026, 1, 1), views=10.0))
    test_db.add(ChannelDay(channel_id=CHANNEL, date=date(2026, 1, 2), views=-1.0))
    await test_db.commit()

    with pytest.raises(SeriesInvalidError) as exc_info:
        await get_metric_series(test_db, CHANNEL, "views")

    assert exc_info.value.context["row_index"] == 1


@pytest.mark.asyncio
async def test_unsupported_metric_is_rejected(test_db):
    with pytest.raises(MLInputError) as exc_info:
        await get_metric_series(test_db, CHANNEL, "likes")
    assert exc_info.value.code == "ML_INVALID_INPUT"


@pytest.mark.asyncio
async def test_storage_failure_is_reported_as_read_error():
    # No tables created: the query itself fails.
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        async with AsyncSession(engine) as session:
            with pytest.raises(SeriesReadError) as exc_info:
                await get_metric_series(session, CHANNEL, "views")
            assert exc_info.value.code == "ML_SERIES_READ_FAILED"
            assert exc_info.value.__cause__ is not None

            with pytest.raises(SeriesReadError) as features_exc:
                await get_days_since_last_video_by_date(session, CHANNEL)
            assert features_exc.value.code == "ML_FEATURES_READ_FAILED"
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_days_since_last_video_prefers_later_feature_set(test_db):
    test_db.add(ChannelFeature(channel_id=CHANNEL, date=date(2026, 1, 1), feature_set_version="v1", days_since_last_video=4))
    test_db.add(ChannelFeature(channel_id=CHANNEL, date=date(2026, 1, 1), feature_set_version="v2", days_since_last_video=2))
    test_db.add(ChannelFeature(channel_id=CHANNEL, date=date(2026, 1, 2), feature_set_version="v1", days_since_last_video=None))
    await test_db.commit()

    mapping = await get_days_since_last_video_by_date(test_db, CHANNEL)

    assert mapping == {date(2026, 1, 1): 2, date(2026, 1, 2): None}
