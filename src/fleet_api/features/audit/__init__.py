from .service import AuditError, AuditRecord, AuditService

__all__ = ["AuditError", "AuditRecord", "AuditService"]
