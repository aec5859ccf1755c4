from match_pipeline.models.base import Base
from match_pipeline.models.delivery_failure import DeliveryFailureLog
from match_pipeline.models.guardian_activity import GuardianActivity
from match_pipeline.models.introduction_request import IntroductionRequest, IntroductionStatus
from match_pipeline.models.match import Match
from match_pipeline.models.pending_notification import PendingNotification
from match_pipeline.models.profile import Profile
from match_pipeline.models.signal import Signal, SignalKind

__all__ = [
    "Base",
    "DeliveryFailureLog",
    "GuardianActivity",
    "IntroductionRequest",
    "IntroductionStatus",
    "Match",
    "PendingNotification",
    "Profile",
    "Signal",
    "SignalKind",
]
