"""Unit tests for the plan/cost policy tables and cost_of."""

import pytest

from src.cr_common.enums import ImageQuality, OperationKind, Plan, VideoModel
from src.cr_common.errors import (
    FeatureNotAvailableError,
    InvalidAmountError,
    UnknownCreditPackError,
)
from src.cr_policy.domain.plans import (
    cost_of,
    credit_pack,
    credits_per_second,
    daily_credits_cap,
    entitlement,
    included_credits,
    normalize_plan,
)


class TestNormalizePlan:
    def test_known_plan(self) -> None:
        assert normalize_plan("premium") is Plan.PREMIUM

    def test_enum_passthrough(self) -> None:
        assert normalize_plan(Plan.BASIC) is Plan.BASIC

    def test_unknown_maps_to_trial(self) -> None:
        assert normalize_plan("gold") is Plan.TRIAL
        assert normalize_plan(None) is Plan.TRIAL


class TestPlanTables:
    def test_daily_cap_trial_only(self) -> None:
        assert daily_credits_cap("trial") == 10
        assert daily_credits_cap("basic") is None
        assert daily_credits_cap("premium") is None

    @pytest.mark.parametrize(
        ("plan", "credits"),
        [("trial", 50), ("basic", 300), ("advanced", 1500), ("premium", 5000)],
    )
    def test_included_credits(self, plan: str, credits: int) -> None:
        assert included_credits(plan) == credits

    @pytest.mark.parametrize(("key", "credits"), [("small", 100), ("MEDIUM", 500), ("large", 2000)])
    def test_credit_packs(self, key: str, credits: int) -> None:
        assert credit_pack(key).credits == credits

    def test_unknown_pack(self) -> None:
        with pytest.raises(UnknownCreditPackError):
            credit_pack("jumbo")

    def test_video_rates(self) -> None:
        assert credits_per_second(VideoModel.KLING) == 5
        assert credits_per_second("gen4_aleph") == 18

    def test_unknown_video_model(self) -> None:
        with pytest.raises(InvalidAmountError):
            credits_per_second("sora")

    def test_entitlements(self) -> None:
        assert entitlement("trial").allowed_video_models == ()
        assert entitlement("trial").download_formats == ()
        advanced = entitlement("advanced")
        assert advanced.allowed_video_models == (VideoModel.KLING,)
        assert advanced.max_video_duration == 4
        assert advanced.fps_max == 8
        premium = entitlement("premium")
        assert premium.priority_queue is True
        assert "4K" in premium.download_formats
        assert premium.max_video_duration == 5


class TestCostOf:
    def test_image_basic(self) -> None:
        assert cost_of(OperationKind.IMAGE_TRANSFORM, 1) == 3

    def test_image_advanced_per_image(self) -> None:
        assert cost_of("image_transform", 2, quality=ImageQuality.ADVANCED) == 10

    def test_image_advanced_not_on_trial(self) -> None:
        with pytest.raises(FeatureNotAvailableError):
            cost_of("image_transform", 1, plan="trial", quality="advanced")

    def test_video_rounds_up(self) -> None:
        assert cost_of("video_generation", 3.5, model="kling_v1_6") == 18

    def test_video_premium_gen4(self) -> None:
        assert cost_of("video_generation", 5, plan="premium", model="gen4_aleph") == 90

    def test_video_model_gated_by_plan(self) -> None:
        with pytest.raises(FeatureNotAvailableError):
            cost_of("video_generation", 2, plan="advanced", model="gen4_aleph")

    def test_video_duration_gated_by_plan(self) -> None:
        with pytest.raises(FeatureNotAvailableError):
            cost_of("video_generation", 5, plan="advanced", model="kling_v1_6")

    def test_video_needs_model(self) -> None:
        with pytest.raises(InvalidAmountError):
            cost_of("video_generation", 2)

    def test_hd_download(self) -> None:
        assert cost_of("hd_download", 1) == 1

    def test_hd_download_on_paid_plan(self) -> None:
        assert cost_of("hd_download", 2, plan="basic") == 2

    def test_hd_download_not_on_trial(self) -> None:
        with pytest.raises(FeatureNotAvailableError):
            cost_of("hd_download", 1, plan="trial")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, quantity: int) -> None:
        with pytest.raises(InvalidAmountError):
            cost_of("hd_download", quantity)
