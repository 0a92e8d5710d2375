from app.models.action import RecommendedAction
from app.models.audit_log import AuditLog
from app.models.catalog import DimDate, DimMetricType, DimPlatform, OkrMaster, OkrMasterMetric
from app.models.objective import OkrObjective

__all__ = [
    "AuditLog",
    "DimDate",
    "DimMetricType",
    "DimPlatform",
    "OkrMaster",
    "OkrMasterMetric",
    "OkrObjective",
    "RecommendedAction",
]
