"""Plan / cost policy: single source of truth for prices and plan gates.

Pure functions and constant tables only. All costs are whole credits; anything
derived from a rate is rounded UP so partial seconds never under-charge.
"""

import math
from dataclasses import dataclass

from config.settings import settings
from src.cr_common.enums import ImageQuality, OperationKind, Plan, VideoModel
from src.cr_common.errors import (
    FeatureNotAvailableError,
    InvalidAmountError,
    UnknownCreditPackError,
)

# Image transform, per output image
IMAGE_CREDITS: dict[ImageQuality, int] = {
    ImageQuality.BASIC: 3,
    ImageQuality.ADVANCED: 5,
}

VIDEO_CREDITS_PER_SECOND: dict[VideoModel, int] = {
    VideoModel.KLING: 5,
    VideoModel.GEN4_ALEPH: 18,
}

HD_DOWNLOAD_CREDITS = 1

# Monthly allotment granted on subscription start/renewal
INCLUDED_CREDITS: dict[Plan, int] = {
    Plan.TRIAL: 50,
    Plan.BASIC: 300,
    Plan.ADVANCED: 1500,
    Plan.PREMIUM: 5000,
}


@dataclass(frozen=True)
class CreditPack:
    key: str
    credits: int
    price_usd: str


CREDIT_PACKS: dict[str, CreditPack] = {
    "small": CreditPack("small", 100, "4.99"),
    "medium": CreditPack("medium", 500, "19.99"),
    "large": CreditPack("large", 2000, "69.99"),
}


@dataclass(frozen=True)
class Entitlement:
    allowed_video_models: tuple[VideoModel, ...]
    max_video_duration: int          # seconds, 0 = no video
    priority_queue: bool
    download_formats: tuple[str, ...]
    styles: tuple[str, ...]
    image_qualities: tuple[ImageQuality, ...]
    fps_max: int | None = None
    aspect_ratios: tuple[str, ...] = ()


_VIDEO_ASPECTS = ("16:9", "9:16", "1:1")

ENTITLEMENTS: dict[Plan, Entitlement] = {
    Plan.TRIAL: Entitlement(
        allowed_video_models=(),
        max_video_duration=0,
        priority_queue=False,
        download_formats=(),
        styles=("basic",),
        image_qualities=(ImageQuality.BASIC,),
    ),
    Plan.BASIC: Entitlement(
        allowed_video_models=(),
        max_video_duration=0,
        priority_queue=False,
        download_formats=("HD",),
        styles=("basic",),
        image_qualities=(ImageQuality.BASIC, ImageQuality.ADVANCED),
    ),
    Plan.ADVANCED: Entitlement(
        allowed_video_models=(VideoModel.KLING,),
        max_video_duration=4,
        priority_queue=False,
        download_formats=("HD",),
        styles=("basic", "advanced"),
        image_qualities=(ImageQuality.BASIC, ImageQuality.ADVANCED),
        fps_max=8,
        aspect_ratios=_VIDEO_ASPECTS,
    ),
    Plan.PREMIUM: Entitlement(
        allowed_video_models=(VideoModel.KLING, VideoModel.GEN4_ALEPH),
        max_video_duration=5,
        priority_queue=True,
        download_formats=("HD", "4K"),
        styles=("basic", "advanced", "premium"),
        image_qualities=(ImageQuality.BASIC, ImageQuality.ADVANCED),
        fps_max=12,
        aspect_ratios=_VIDEO_ASPECTS,
    ),
}


def normalize_plan(plan: str | Plan | None) -> Plan:
    """Map legacy or unknown plan strings to a Plan; unknown means trial."""
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan(plan)
    except ValueError:
        return Plan.TRIAL


def entitlement(plan: str | Plan) -> Entitlement:
    return ENTITLEMENTS[normalize_plan(plan)]


def daily_credits_cap(plan: str | Plan) -> int | None:
    """Daily cap for trial accounts; paid plans are not day-capped."""
    if normalize_plan(plan) is Plan.TRIAL:
        return settings.TRIAL_DAILY_CREDITS
    return None


def included_credits(plan: str | Plan) -> int:
    return INCLUDED_CREDITS[normalize_plan(plan)]


def credit_pack(key: str) -> CreditPack:
    pack = CREDIT_PACKS.get(key.lower())
    if pack is None:
        raise UnknownCreditPackError(key)
    return pack


def credits_per_second(model: VideoModel | str) -> int:
    try:
        return VIDEO_CREDITS_PER_SECOND[VideoModel(model)]
    except ValueError:
        raise InvalidAmountError(f"unknown video model {model}") from None


def cost_of(
    kind: OperationKind | str,
    quantity_or_duration: float,
    plan: str | Plan | None = None,
    quality: ImageQuality | str = ImageQuality.BASIC,
    model: VideoModel | str | None = None,
) -> int:
    """Credits to reserve for one operation.

    - image_transform: per-image price for `quality`, times the image count
    - video_generation: ceil(credits_per_second(model) * duration_seconds)
    - hd_download: flat per file

    When `plan` is given the operation is checked against its entitlement.
    """
    kind = OperationKind(kind)
    if quantity_or_duration <= 0:
        raise InvalidAmountError(f"{kind.value} needs a positive quantity")
    ent = entitlement(plan) if plan is not None else None
    plan_name = normalize_plan(plan).value if plan is not None else ""

    if kind is OperationKind.IMAGE_TRANSFORM:
        quality = ImageQuality(quality)
        if ent is not None and quality not in ent.image_qualities:
            raise FeatureNotAvailableError(plan_name, f"{quality.value} image quality")
        return IMAGE_CREDITS[quality] * math.ceil(quantity_or_duration)

    if kind is OperationKind.VIDEO_GENERATION:
        if model is None:
            raise InvalidAmountError("video generation needs a model")
        rate = credits_per_second(model)
        if ent is not None:
            if VideoModel(model) not in ent.allowed_video_models:
                raise FeatureNotAvailableError(plan_name, f"video model {VideoModel(model).value}")
            if quantity_or_duration > ent.max_video_duration:
                raise FeatureNotAvailableError(
                    plan_name,
                    f"video longer than {ent.max_video_duration}s",
                )
        return math.ceil(rate * quantity_or_duration)

    if ent is not None and "HD" not in ent.download_formats:
        raise FeatureNotAvailableError(plan_name, "HD downloads")
    return HD_DOWNLOAD_CREDITS * math.ceil(quantity_or_duration)
