"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class Plan(str, Enum):
    TRIAL = "trial"
    BASIC = "basic"
    ADVANCED = "advanced"
    PREMIUM = "premium"


class LedgerReason(str, Enum):
    # Webhook grants
    CREDIT_PACK = "credit_pack"
    SUBSCRIPTION_GRANT = "subscription_grant"
    # Hold lifecycle
    RESERVE = "reserve"
    REFUND_HOLD = "refund_hold"
    COMMIT_ADJUSTMENT = "commit_adjustment"
    # Manual
    ADMIN_CORRECTION = "admin_correction"


class HoldStatus(str, Enum):
    RESERVED = "reserved"
    COMMITTED = "committed"
    CANCELED = "canceled"


class OperationKind(str, Enum):
    IMAGE_TRANSFORM = "image_transform"
    VIDEO_GENERATION = "video_generation"
    HD_DOWNLOAD = "hd_download"


class ImageQuality(str, Enum):
    BASIC = "basic"
    ADVANCED = "advanced"


class VideoModel(str, Enum):
    KLING = "kling_v1_6"
    GEN4_ALEPH = "gen4_aleph"


class OperationStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
