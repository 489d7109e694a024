from .admin_alert import AdminAlert, AlertSeverityEnum, AlertStatusEnum, AlertTypeEnum
from .location import Actor, LocationSample, Verdict, ZoneDistance
from .location_approval import ApprovalAction, ApprovalStatusEnum, EffectiveApprovalStatus, LocationApproval
from .location_log import AttemptStatusEnum, LocationLog
from .security_event import SecurityEvent
from .zone import Zone
