"""Referral codes and attribution."""

import string

import pytest

from coursepath.referrals.service import (
    CODE_CHARSET,
    CODE_LENGTH,
    AlreadyReferred,
    InvalidReferralCode,
    count_referrals,
    generate_referral_code,
    get_or_create_referral_code,
    get_referral_state,
    grant_tier,
    normalize_referral_code,
    track_referral,
)


class TestCodeGeneration:
    def test_code_shape(self):
        code = generate_referral_code()
        assert len(code) == CODE_LENGTH == 8
        assert all(c in string.ascii_uppercase + string.digits for c in code)

    def test_charset(self):
        assert CODE_CHARSET == string.ascii_uppercase + string.digits

    def test_codes_are_unique(self):
        assert len({generate_referral_code() for _ in range(1000)}) == 1000

    def test_normalize(self):
        assert normalize_referral_code(" abc12345 ") == "ABC12345"


class TestReferralCode:
    @pytest.mark.asyncio
    async def test_created_once(self, db_session, user):
        code = await get_or_create_referral_code(db_session, user)
        await db_session.commit()
        assert await get_or_create_referral_code(db_session, user) == code
        assert user.referral_code == code


class TestTrackReferral:
    @pytest.mark.asyncio
    async def test_attribution_counts(self, db_session, make_user):
        referrer = await make_user()
        friend = await make_user()
        code = await get_or_create_referral_code(db_session, referrer)

        assert await track_referral(db_session, friend.id, code.lower()) == referrer.id
        await db_session.commit()
        assert await count_referrals(db_session, referrer.id) == 1

    @pytest.mark.asyncio
    async def test_first_attribution_wins(self, db_session, make_user):
        first = await make_user()
        second = await make_user()
        friend = await make_user()
        code_a = await get_or_create_referral_code(db_session, first)
        code_b = await get_or_create_referral_code(db_session, second)

        await track_referral(db_session, friend.id, code_a)
        with pytest.raises(AlreadyReferred):
            await track_referral(db_session, friend.id, code_b)
        with pytest.raises(AlreadyReferred):
            await track_referral(db_session, friend.id, code_a)
        await db_session.commit()

        assert await count_referrals(db_session, first.id) == 1
        assert await count_referrals(db_session, second.id) == 0

    @pytest.mark.asyncio
    async def test_self_referral_rejected(self, db_session, user):
        code = await get_or_create_referral_code(db_session, user)
        with pytest.raises(InvalidReferralCode):
            await track_referral(db_session, user.id, code)

    @pytest.mark.asyncio
    async def test_unknown_code_rejected(self, db_session, user):
        with pytest.raises(InvalidReferralCode):
            await track_referral(db_session, user.id, "ZZZZZZZZ")


class TestReferralState:
    @pytest.mark.asyncio
    async def test_state(self, db_session, make_user):
        referrer = await make_user()
        code = await get_or_create_referral_code(db_session, referrer)
        for _ in range(3):
            friend = await make_user()
            await track_referral(db_session, friend.id, code)
        assert await grant_tier(db_session, referrer.id, "launch_checklist") is True
        assert await grant_tier(db_session, referrer.id, "launch_checklist") is False
        await db_session.commit()

        state = await get_referral_state(db_session, referrer.id)
        assert state.referral_code == code
        assert state.count == 3
        assert state.granted_tiers == ["launch_checklist"]
        assert state.highest_tier_granted == "launch_checklist"

    @pytest.mark.asyncio
    async def test_unknown_tier(self, db_session, user):
        with pytest.raises(ValueError, match="Unknown referral tier"):
            await grant_tier(db_session, user.id, "yacht")
